"""
Realtime Socket.IO app.

This package contains:
- The Socket.IO server mounted next to the HTTP API
- In-memory presence tracking broadcast as `getOnlineUsers`
"""
