"""
Remote Call Gateway: the HTTP transport shared by every session action.

- Fixed base address (e.g. http://localhost:5000/api); callers pass `/auth/...` paths.
- Credentials travel as cookies: one aiohttp CookieJar per gateway, optionally
  persisted to a file so separate processes share a login.
- Failures are decoded exactly once, here, into `GatewayError`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError

from chatlib.helpers import http_url
from chatlib.models.api import ErrorPayload, Payload, to_json_payload

logger = logging.getLogger(__name__)

UNAUTHORIZED = 401


class GatewayError(Exception):
    """A failed gateway call.

    `status` is None when no HTTP response was received (network failure, timeout,
    undecodable success payload).
    """

    def __init__(
        self,
        *,
        status: Optional[int] = None,
        server_message: Optional[str] = None,
        transport_message: Optional[str] = None,
    ):
        self.status = status
        self.server_message = server_message
        self.transport_message = transport_message
        super().__init__(server_message or transport_message or f"HTTP {status}")

    @property
    def is_unauthorized(self) -> bool:
        return self.status == UNAUTHORIZED

    def user_message(self, default: str) -> str:
        """Server message, then transport message, then the caller's default."""
        return self.server_message or self.transport_message or default

    def __repr__(self) -> str:
        return (
            f"GatewayError(status={self.status!r}, server_message={self.server_message!r}, "
            f"transport_message={self.transport_message!r})"
        )


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _server_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    try:
        message = ErrorPayload.model_validate(body).message
    except ValidationError:
        return None
    return message or None


class Gateway:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        cookie_jar_path: Optional[Path] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.cookie_jar_path = Path(cookie_jar_path) if cookie_jar_path else None
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "Gateway":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    async def open(self) -> aiohttp.ClientSession:
        """Return the live session, creating it (and loading saved cookies) when needed."""
        if self._session is not None and not self._session.closed:
            return self._session
        # unsafe=True: accept cookies from IP hosts such as 127.0.0.1 in local setups
        cookie_jar = aiohttp.CookieJar(unsafe=True)
        if self.cookie_jar_path and self.cookie_jar_path.exists():
            cookie_jar.load(self.cookie_jar_path)
            logger.debug("Loaded cookies from %s", self.cookie_jar_path)
        self._session = aiohttp.ClientSession(
            cookie_jar=cookie_jar,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        return self._session

    async def close(self) -> None:
        if self._session is None:
            return
        if self.cookie_jar_path:
            self.cookie_jar_path.parent.mkdir(parents=True, exist_ok=True)
            self._session.cookie_jar.save(self.cookie_jar_path)
        await self._session.close()
        self._session = None

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def request(self, method: str, path: str, payload: Optional[Payload] = None) -> Any:
        session = await self.open()

        url = http_url(self.base_url, path)
        body = to_json_payload(payload)
        try:
            async with session.request(method, url, json=body, headers=self._headers()) as resp:
                text = await resp.text()
                data = _decode_body(text)
                if resp.status >= 400:
                    raise GatewayError(
                        status=resp.status,
                        server_message=_server_message(data),
                        transport_message=f"Request failed with status code {resp.status}",
                    )
                return data
        except asyncio.TimeoutError as e:
            raise GatewayError(transport_message=f"timeout of {self.timeout:g}s exceeded") from e
        except aiohttp.ClientError as e:
            raise GatewayError(transport_message=str(e) or e.__class__.__name__) from e

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, payload: Optional[Payload] = None) -> Any:
        return await self.request("POST", path, payload)

    async def put(self, path: str, payload: Optional[Payload] = None) -> Any:
        return await self.request("PUT", path, payload)
