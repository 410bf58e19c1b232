"""
Session State Store: who is logged in, and which auth action is in flight.

Every action:
- brackets its gateway call with its busy flag (cleared on every exit path)
- catches `GatewayError` locally, logs it and publishes a notification
- never raises to the caller; returns the resulting identity / success flag instead

Concurrent actions are not serialized: the last one to finish wins `auth_user`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Iterator, List, Optional

from pydantic import ValidationError

from chatlib.connection import ConnectionSupervisor
from chatlib.gateway import Gateway, GatewayError
from chatlib.models.api import Payload
from chatlib.models.identity import Identity
from chatlib.notifications import Notifier
from chatlib.types import BusyFlag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    auth_user: Optional[Identity]
    is_signing_up: bool
    is_logging_in: bool
    is_updating_profile: bool
    is_checking_auth: bool
    online_users: FrozenSet[str]
    is_connected: bool


SessionListener = Callable[[SessionSnapshot], None]


def _decode_identity(data: Any) -> Optional[Identity]:
    if not data:
        return None
    try:
        return Identity.model_validate(data)
    except ValidationError as e:
        raise GatewayError(transport_message=f"Malformed identity payload: {e.error_count()} error(s)") from e


class SessionStore:
    def __init__(
        self,
        gateway: Gateway,
        connections: ConnectionSupervisor,
        notifier: Notifier,
        *,
        local_logout_on_failure: bool = True,
    ):
        self._gateway = gateway
        self._connections = connections
        self._notifier = notifier
        self._local_logout_on_failure = local_logout_on_failure
        self._listeners: List[SessionListener] = []

        self.auth_user: Optional[Identity] = None
        self.is_signing_up = False
        self.is_logging_in = False
        self.is_updating_profile = False
        # Unauthenticated until check_session says otherwise
        self.is_checking_auth = True

        connections.set_change_listener(self._emit)

    @property
    def connections(self) -> ConnectionSupervisor:
        return self._connections

    @property
    def online_users(self) -> FrozenSet[str]:
        return self._connections.online_users

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            auth_user=self.auth_user,
            is_signing_up=self.is_signing_up,
            is_logging_in=self.is_logging_in,
            is_updating_profile=self.is_updating_profile,
            is_checking_auth=self.is_checking_auth,
            online_users=self._connections.online_users,
            is_connected=self._connections.connected,
        )

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call `listener` with a fresh snapshot after every state change. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _set_auth_user(self, identity: Optional[Identity]) -> None:
        self.auth_user = identity
        self._emit()

    @contextmanager
    def _busy(self, flag: BusyFlag) -> Iterator[None]:
        setattr(self, flag.value, True)
        self._emit()
        try:
            yield
        finally:
            setattr(self, flag.value, False)
            self._emit()

    async def check_session(self) -> Optional[Identity]:
        with self._busy(BusyFlag.CHECKING_AUTH):
            try:
                identity = _decode_identity(await self._gateway.get("/auth/check"))
            except GatewayError as e:
                if e.is_unauthorized:
                    logger.info("No active session")
                else:
                    logger.error("Error in check_session: %r", e)
                    self._notifier.error(e.user_message("Auth check failed"))
                self._set_auth_user(None)
                return None

            self._set_auth_user(identity)

        # The flag covers the HTTP call only; socket establishment runs after it
        await self._connections.connect(identity)
        return identity

    async def _authenticate(
        self,
        path: str,
        credentials: Payload,
        flag: BusyFlag,
        success_message: str,
        default_error: str,
    ) -> Optional[Identity]:
        with self._busy(flag):
            try:
                identity = _decode_identity(await self._gateway.post(path, credentials))
            except GatewayError as e:
                logger.error("%s error: %r", path, e)
                self._notifier.error(e.user_message(default_error))
                return None

            self._set_auth_user(identity)
            self._notifier.success(success_message)

        await self._connections.connect(identity)
        return identity

    async def sign_up(self, credentials: Payload) -> Optional[Identity]:
        return await self._authenticate(
            "/auth/signup",
            credentials,
            BusyFlag.SIGNING_UP,
            "Account created successfully",
            "Signup failed",
        )

    async def log_in(self, credentials: Payload) -> Optional[Identity]:
        return await self._authenticate(
            "/auth/login",
            credentials,
            BusyFlag.LOGGING_IN,
            "Logged in successfully",
            "Login failed",
        )

    async def log_out(self) -> bool:
        """Invalidate the server session. Local state is cleared even if that call fails,
        unless the store was built with `local_logout_on_failure=False`."""
        try:
            await self._gateway.post("/auth/logout")
        except GatewayError as e:
            logger.error("Error in log_out: %r", e)
            self._notifier.error(e.user_message("Logout failed"))
            if self._local_logout_on_failure:
                self._set_auth_user(None)
                await self._connections.disconnect()
            return False

        self._set_auth_user(None)
        self._notifier.success("Logged out successfully")
        await self._connections.disconnect()
        return True

    async def update_profile(self, data: Payload) -> Optional[Identity]:
        with self._busy(BusyFlag.UPDATING_PROFILE):
            try:
                identity = _decode_identity(await self._gateway.put("/auth/update-profile", data))
            except GatewayError as e:
                logger.error("Error in update_profile: %r", e)
                self._notifier.error(e.user_message("Update failed"))
                return None

            self._set_auth_user(identity)
            self._notifier.success("Profile updated successfully")
            return identity
