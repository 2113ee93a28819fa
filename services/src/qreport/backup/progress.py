"""Progress event protocol shared by long-running backup operations.

Every operation yields zero or more ``InProgress`` events followed by exactly
one terminal event, either ``Completed`` or ``Error``. Events are plain frozen
dataclasses discriminated by their ``kind`` field so callers can ``match`` on
them without relying on a class hierarchy.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Literal, Mapping, Union

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .archive.models import ArchiveEntry


@dataclass(frozen=True)
class InProgress:
    processed_count: int
    total_count: int
    current_item: str
    fraction: float
    kind: Literal["in_progress"] = "in_progress"


@dataclass(frozen=True)
class Completed:
    count: int
    total_bytes: int
    output_path: str | None
    warnings: tuple[str, ...] = ()
    entries: tuple["ArchiveEntry", ...] = ()
    kind: Literal["completed"] = "completed"


@dataclass(frozen=True)
class Error:
    message: str
    code: str = "INTERNAL"
    details: Mapping[str, Any] = field(default_factory=dict)
    kind: Literal["error"] = "error"


ProgressEvent = Union[InProgress, Completed, Error]


def is_terminal(event: ProgressEvent) -> bool:
    return event.kind != "in_progress"


class ProgressProtocolError(RuntimeError):
    """Raised when an operation violates the progress emission contract."""


class ProgressEmitter:
    """Build events for one operation while enforcing ordering rules."""

    def __init__(self, total_count: int = 0) -> None:
        self.total_count = total_count
        self._last_processed = 0
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def processed_count(self) -> int:
        """Highest processed count emitted so far."""

        return self._last_processed

    def progress(self, processed_count: int, current_item: str) -> InProgress:
        self._ensure_open()
        if processed_count < self._last_processed:
            raise ProgressProtocolError(
                f"processed count went backwards ({self._last_processed} -> {processed_count})"
            )
        self._last_processed = processed_count
        total = max(self.total_count, processed_count)
        fraction = processed_count / total if total else 0.0
        return InProgress(
            processed_count=processed_count,
            total_count=self.total_count,
            current_item=current_item,
            fraction=min(1.0, fraction),
        )

    def completed(
        self,
        count: int,
        total_bytes: int,
        output_path: str | None,
        *,
        warnings: list[str] | tuple[str, ...] = (),
        entries: list["ArchiveEntry"] | tuple["ArchiveEntry", ...] = (),
    ) -> Completed:
        self._ensure_open()
        self._terminated = True
        return Completed(
            count=count,
            total_bytes=total_bytes,
            output_path=output_path,
            warnings=tuple(warnings),
            entries=tuple(entries),
        )

    def error(self, message: str, *, code: str = "INTERNAL", details: Mapping[str, Any] | None = None) -> Error:
        self._ensure_open()
        self._terminated = True
        return Error(message=message, code=code, details=dict(details or {}))

    def _ensure_open(self) -> None:
        if self._terminated:
            raise ProgressProtocolError("operation already emitted its terminal event")


class CancellationToken:
    """Thread-safe cancellation flag checked at safe operation boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def final_event(events: Iterable[ProgressEvent]) -> ProgressEvent:
    """Drain an event stream and return its terminal event."""

    last: ProgressEvent | None = None
    for event in events:
        last = event
    if last is None or not is_terminal(last):
        raise ProgressProtocolError("event stream ended without a terminal event")
    return last


__all__ = [
    "CancellationToken",
    "Completed",
    "Error",
    "InProgress",
    "ProgressEmitter",
    "ProgressEvent",
    "ProgressProtocolError",
    "final_event",
    "is_terminal",
]
