"""Observable status of the edit dispatcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

__all__ = ["Status", "StatusChannel", "StatusKind", "StatusObserver"]

LOGGER = logging.getLogger(__name__)


class StatusKind(str, Enum):
    """Lifecycle states published while an edit is processed."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Status:
    """Current dispatcher state plus an optional user-facing message."""

    kind: StatusKind
    message: str | None = None

    @classmethod
    def idle(cls) -> Status:
        return cls(StatusKind.IDLE)

    @classmethod
    def analyzing(cls) -> Status:
        return cls(StatusKind.ANALYZING)

    @classmethod
    def persisting(cls) -> Status:
        return cls(StatusKind.PERSISTING)

    @classmethod
    def succeeded(cls, message: str) -> Status:
        return cls(StatusKind.SUCCEEDED, message)

    @classmethod
    def failed(cls, message: str) -> Status:
        return cls(StatusKind.FAILED, message)

    @property
    def is_terminal(self) -> bool:
        return self.kind in {StatusKind.SUCCEEDED, StatusKind.FAILED}

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind.value}: {self.message}"
        return self.kind.value


StatusObserver = Callable[[Status], None]


class StatusChannel:
    """Single current-value channel; new values overwrite, nothing is queued."""

    def __init__(self, initial: Status | None = None) -> None:
        self._value = initial or Status.idle()
        self._observers: list[StatusObserver] = []

    @property
    def value(self) -> Status:
        return self._value

    def subscribe(self, observer: StatusObserver, *, replay: bool = False) -> Callable[[], None]:
        """Register ``observer`` and return a callable that removes it."""
        self._observers.append(observer)
        if replay:
            self._notify(observer, self._value)

        def _unsubscribe() -> None:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, status: Status) -> None:
        self._value = status
        for observer in list(self._observers):
            self._notify(observer, status)

    @staticmethod
    def _notify(observer: StatusObserver, status: Status) -> None:
        try:
            observer(status)
        except Exception:  # noqa: BLE001 - observers must not break the publisher
            LOGGER.exception("Status observer failed for %s", status)
