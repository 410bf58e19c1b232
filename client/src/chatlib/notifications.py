"""
Transient user-facing notifications ("toasts").

Store actions never raise to their caller; the outcome a user should see is
published here instead. Sinks decide how to show it (stderr for the CLI, a UI
callback elsewhere).
"""

from __future__ import annotations

import sys
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterable, List, Optional

from chatlib.types import NotificationLevel

NotificationSink = Callable[["Notification"], None]


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str


class Notifier:
    def __init__(self, sinks: Optional[Iterable[NotificationSink]] = None, history_size: int = 100):
        self._sinks: List[NotificationSink] = list(sinks or [])
        self._history: Deque[Notification] = deque(maxlen=history_size)

    @property
    def history(self) -> List[Notification]:
        return list(self._history)

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def success(self, message: str) -> Notification:
        return self._publish(Notification(NotificationLevel.SUCCESS, message))

    def error(self, message: str) -> Notification:
        return self._publish(Notification(NotificationLevel.ERROR, message))

    def _publish(self, notification: Notification) -> Notification:
        self._history.append(notification)
        for sink in self._sinks:
            sink(notification)
        return notification


def console_sink(notification: Notification) -> None:
    tag = "ok" if notification.level is NotificationLevel.SUCCESS else "error"
    sys.stderr.write(f"[{tag}] {notification.message}\n")
    sys.stderr.flush()
