"""Transient error/success notifications for the presentation layer."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ERROR_TIMEOUT = 6.0
SUCCESS_TIMEOUT = 4.0


class NotificationKind(str, Enum):
    """Notification slot"""
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class Notification:
    """A single transient message"""
    kind: NotificationKind
    message: str
    timeout: float
    created_at: float

    @property
    def expires_at(self) -> float:
        return self.created_at + self.timeout

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


NotificationListener = Callable[[NotificationKind, Optional[Notification]], None]


class NotificationChannel:
    """
    Two independent slots, one message each.

    Setting a slot replaces whatever it held; nothing is queued and no
    history is kept. Messages carry their auto-clear timeout, which the
    presentation layer enforces through ``expire()``.
    """

    def __init__(
        self,
        error_timeout: float = ERROR_TIMEOUT,
        success_timeout: float = SUCCESS_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeouts = {
            NotificationKind.ERROR: error_timeout,
            NotificationKind.SUCCESS: success_timeout,
        }
        self.clock = clock
        self._slots: Dict[NotificationKind, Optional[Notification]] = {
            NotificationKind.ERROR: None,
            NotificationKind.SUCCESS: None,
        }
        self._listeners: List[NotificationListener] = []

    def error(self, message: str) -> Notification:
        return self._set(NotificationKind.ERROR, message)

    def success(self, message: str) -> Notification:
        return self._set(NotificationKind.SUCCESS, message)

    def _set(self, kind: NotificationKind, message: str) -> Notification:
        notification = Notification(
            kind=kind,
            message=message,
            timeout=self.timeouts[kind],
            created_at=self.clock(),
        )
        self._slots[kind] = notification
        self._notify(kind, notification)
        return notification

    def get(self, kind: NotificationKind) -> Optional[Notification]:
        return self._slots[NotificationKind(kind)]

    @property
    def current_error(self) -> Optional[Notification]:
        return self._slots[NotificationKind.ERROR]

    @property
    def current_success(self) -> Optional[Notification]:
        return self._slots[NotificationKind.SUCCESS]

    def dismiss(self, kind: NotificationKind) -> None:
        """Clear a slot early (user dismissal)."""
        kind = NotificationKind(kind)
        if self._slots[kind] is not None:
            self._slots[kind] = None
            self._notify(kind, None)

    def expire(self, now: Optional[float] = None) -> None:
        """Clear every slot whose timeout has elapsed."""
        now = self.clock() if now is None else now
        for kind, notification in list(self._slots.items()):
            if notification is not None and notification.is_expired(now):
                self.dismiss(kind)

    def clear(self) -> None:
        for kind in NotificationKind:
            self.dismiss(kind)

    def add_listener(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: NotificationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, kind: NotificationKind, notification: Optional[Notification]) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, notification)
            except Exception as e:
                logger.warning(f"Error in notification listener: {e}")
