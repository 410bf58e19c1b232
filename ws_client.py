"""
CLI client for the chat backend: drives the session store from a terminal.

Supports:
- Session check:        GET  /api/auth/check
- Sign up / log in:     POST /api/auth/signup, POST /api/auth/login
- Log out:              POST /api/auth/logout
- Profile update:       PUT  /api/auth/update-profile
- Presence watch:       Socket.IO on the API host, `getOnlineUsers` events

Credentials are cookies. Pass --cookie-jar (or set CHAT_COOKIE_JAR_PATH) so a
`login` in one invocation is still valid for `presence` in the next.

Notifications (success / error) go to stderr; results go to stdout as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from chatlib.config import ClientSettings, config, configure_logging
from chatlib.connection import ConnectionSupervisor, SocketIOChannelFactory
from chatlib.gateway import Gateway
from chatlib.models.api import Credentials, ProfileUpdate
from chatlib.models.identity import Identity
from chatlib.notifications import Notifier, console_sink
from chatlib.session_store import SessionSnapshot, SessionStore


def _print_identity(identity: Optional[Identity]) -> None:
    if identity is None:
        print("null")
        return
    print(json.dumps(identity.model_dump(by_alias=True, exclude_none=True), indent=2, ensure_ascii=False))


def build_store(settings: ClientSettings, gateway: Gateway, notifier: Notifier) -> SessionStore:
    factory = SocketIOChannelFactory(
        settings.socket_url,
        reconnection_attempts=settings.CHAT_SOCKET_RECONNECTION_ATTEMPTS,
    )
    return SessionStore(gateway, ConnectionSupervisor(factory), notifier)


async def watch_presence(store: SessionStore, seconds: Optional[float]) -> int:
    identity = await store.check_session()
    if identity is None:
        sys.stderr.write("Not logged in; run `login` first (with the same --cookie-jar).\n")
        return 1

    last: list[frozenset] = [frozenset()]

    def _on_change(snapshot: SessionSnapshot) -> None:
        if snapshot.online_users != last[0]:
            last[0] = snapshot.online_users
            print(json.dumps(sorted(snapshot.online_users)))
            sys.stdout.flush()

    unsubscribe = store.subscribe(_on_change)
    sys.stderr.write("Watching online users. Ctrl+C to quit.\n")
    sys.stderr.flush()
    try:
        if seconds is None:
            while True:
                await asyncio.sleep(3600)
        else:
            await asyncio.sleep(seconds)
    finally:
        unsubscribe()
        await store.connections.disconnect()
    return 0


async def run_command(args: argparse.Namespace, settings: ClientSettings) -> int:
    notifier = Notifier([console_sink])
    async with Gateway(
        settings.CHAT_API_BASE_URL,
        timeout=settings.CHAT_REQUEST_TIMEOUT_SECONDS,
        cookie_jar_path=settings.CHAT_COOKIE_JAR_PATH,
    ) as gateway:
        store = build_store(settings, gateway, notifier)

        if args.cmd == "check":
            identity = await store.check_session()
            _print_identity(identity)
            await store.connections.disconnect()
            return 0 if identity is not None else 1

        if args.cmd in ("signup", "login"):
            credentials = Credentials(email=args.email, password=args.password, fullName=getattr(args, "full_name", None))
            action = store.sign_up if args.cmd == "signup" else store.log_in
            identity = await action(credentials)
            _print_identity(identity)
            await store.connections.disconnect()
            return 0 if identity is not None else 1

        if args.cmd == "logout":
            return 0 if await store.log_out() else 1

        if args.cmd == "update-profile":
            identity = await store.update_profile(ProfileUpdate(fullName=args.full_name, profilePic=args.profile_pic))
            _print_identity(identity)
            return 0 if identity is not None else 1

        if args.cmd == "presence":
            return await watch_presence(store, args.seconds)

    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CLI client for the chat backend (auth + presence)")
    parser.add_argument("--api", help=f"API base, e.g. {config.CHAT_API_BASE_URL}")
    parser.add_argument("--socket", help="Socket.IO base (defaults to --api without the trailing /api)")
    parser.add_argument("--cookie-jar", type=Path, help="File used to keep the session cookie between runs")
    parser.add_argument("--log-level", help="Logging level (default from CHAT_LOG_LEVEL)")

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("check", help="Check the current session")

    p_signup = sub.add_parser("signup", help="Create an account and log in")
    p_signup.add_argument("--email", required=True)
    p_signup.add_argument("--password", required=True)
    p_signup.add_argument("--full-name")

    p_login = sub.add_parser("login", help="Log in")
    p_login.add_argument("--email", required=True)
    p_login.add_argument("--password", required=True)

    sub.add_parser("logout", help="Log out")

    p_update = sub.add_parser("update-profile", help="Update profile fields")
    p_update.add_argument("--full-name")
    p_update.add_argument("--profile-pic", help="Image URL or data URI")

    p_presence = sub.add_parser("presence", help="Connect and print online users as they change")
    p_presence.add_argument("--seconds", type=float, help="Stop after N seconds (default: run until Ctrl+C)")

    return parser


def settings_from_args(args: argparse.Namespace, base: ClientSettings = config) -> ClientSettings:
    overrides = {}
    if args.api:
        overrides["CHAT_API_BASE_URL"] = args.api
    if args.socket:
        overrides["CHAT_SOCKET_URL"] = args.socket
    if args.cookie_jar:
        overrides["CHAT_COOKIE_JAR_PATH"] = args.cookie_jar
    if args.log_level:
        overrides["CHAT_LOG_LEVEL"] = args.log_level
    return base.model_copy(update=overrides)


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    configure_logging(settings.CHAT_LOG_LEVEL)
    return await run_command(args, settings)


def run() -> None:
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        raise SystemExit(130)


if __name__ == "__main__":
    run()
