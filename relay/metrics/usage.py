"""
Usage Tracker

Append-only event log of dispatch activity: requests, successes, errors and
provider switches. Analytics are derived from the log on demand by
filtering and counting; nothing is pre-aggregated, so a cleared log always
reports zero.

Entries are frozen once written. Timestamps never go backwards: if the
clock steps back, the entry reuses the previous timestamp so the log stays
non-decreasing in insertion order.

The tracker is thread-safe using threading.Lock; readers get a snapshot
copy of the log and never observe a half-written entry.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import threading


class LogType(str, Enum):
    """Kind of usage event."""

    REQUEST = "request"
    SUCCESS = "success"
    ERROR = "error"
    SWITCH = "switch"


@dataclass(frozen=True)
class UsageLogEntry:
    """
    One immutable usage event.

    Attributes:
        type: Event kind
        provider: Provider key the event concerns
        timestamp: When the event was recorded (UTC)
        task_type: Task tag, set on request events
        error: Failure message, set on error events
    """

    type: LogType
    provider: str
    timestamp: datetime
    task_type: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "type": self.type.value,
            "provider": self.provider,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.task_type is not None:
            data["task_type"] = self.task_type
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class UsageAnalytics:
    """
    Snapshot of usage counters derived from the log.

    Attributes:
        total_requests: Number of request events
        total_successes: Number of success events
        total_errors: Number of error events
        total_switches: Number of provider switch events
        providers: Every provider seen, in first-seen order
        last_activity: Timestamp of the newest entry, None when empty
        logs: Copy of the log at snapshot time
    """

    total_requests: int = 0
    total_successes: int = 0
    total_errors: int = 0
    total_switches: int = 0
    providers: list[str] = field(default_factory=list)
    last_activity: datetime | None = None
    logs: list[UsageLogEntry] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def error_message(error: object) -> str:
    """
    Extract a human-readable message from an error-like object.

    Accepts exceptions, mappings with a "message" key, objects with a
    ``message`` attribute, or anything else (stringified).
    """
    if isinstance(error, Mapping):
        message = error.get("message")
        return str(message) if message is not None else str(dict(error))
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    message = getattr(error, "message", None)
    if message is not None:
        return str(message)
    return str(error)


class UsageTracker:
    """
    Thread-safe append-only usage log.

    Example:
        tracker = UsageTracker()
        tracker.log_request("primary", "code_generation")
        tracker.log_success("primary")
        tracker.get_analytics().total_successes  # 1
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """
        Initialize the tracker.

        Args:
            clock: Source of timestamps. Defaults to the UTC wall clock;
                   tests inject a fixed or stepping clock.
        """
        self._lock = threading.Lock()
        self._logs: list[UsageLogEntry] = []
        self._clock = clock or _utcnow

    def _append(
        self,
        log_type: LogType,
        provider: str,
        task_type: str | None = None,
        error: str | None = None,
    ) -> UsageLogEntry:
        with self._lock:
            timestamp = self._clock()
            if self._logs and timestamp < self._logs[-1].timestamp:
                timestamp = self._logs[-1].timestamp
            entry = UsageLogEntry(
                type=log_type,
                provider=provider,
                timestamp=timestamp,
                task_type=task_type,
                error=error,
            )
            self._logs.append(entry)
            return entry

    def log_request(self, provider: str, task_type: str) -> UsageLogEntry:
        """Record that a provider is about to be called for a task."""
        task_type = getattr(task_type, "value", task_type)
        return self._append(LogType.REQUEST, provider, task_type=task_type)

    def log_success(self, provider: str) -> UsageLogEntry:
        """Record a successful provider call."""
        return self._append(LogType.SUCCESS, provider)

    def log_error(self, provider: str, error: object) -> UsageLogEntry:
        """Record a failed provider call with its message."""
        return self._append(LogType.ERROR, provider, error=error_message(error))

    def log_provider_switch(self, provider: str) -> UsageLogEntry:
        """Record a manual switch of the active provider."""
        return self._append(LogType.SWITCH, provider)

    def get_analytics(self) -> UsageAnalytics:
        """
        Derive counters from the current log.

        Pure read: filters and counts a snapshot of the log.

        Returns:
            UsageAnalytics snapshot
        """
        with self._lock:
            logs = list(self._logs)

        counts = {log_type: 0 for log_type in LogType}
        for entry in logs:
            counts[entry.type] += 1

        return UsageAnalytics(
            total_requests=counts[LogType.REQUEST],
            total_successes=counts[LogType.SUCCESS],
            total_errors=counts[LogType.ERROR],
            total_switches=counts[LogType.SWITCH],
            providers=list(dict.fromkeys(entry.provider for entry in logs)),
            last_activity=logs[-1].timestamp if logs else None,
            logs=logs,
        )

    def get_logs_by_type(self, log_type: LogType | str) -> list[UsageLogEntry]:
        """Return entries of one kind, in insertion order."""
        wanted = getattr(log_type, "value", log_type)
        with self._lock:
            return [entry for entry in self._logs if entry.type.value == wanted]

    def get_logs_by_provider(self, provider: str) -> list[UsageLogEntry]:
        """Return entries concerning one provider, in insertion order."""
        with self._lock:
            return [entry for entry in self._logs if entry.provider == provider]

    def clear_logs(self) -> None:
        """
        Drop every entry.

        Primarily used for testing and debugging.
        """
        with self._lock:
            self._logs.clear()
