"""In-process event log.

Every component writes structured events here. The log keeps the most recent
``max_logs`` entries newest first, mirrors each one to the stdlib logger
``quicklinks.events`` and snapshots the whole buffer under ``app-logs``.
Nothing in here raises because storage is unavailable.
"""

import json
import logging
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from quicklinks.schemas import LogEntry, LogLevel
from quicklinks.storage import LOGS_KEY, SnapshotStore, SnapshotWriter

logger = logging.getLogger("quicklinks.events")

MAX_LOGS = 1000

STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

entry_list = TypeAdapter(list[LogEntry])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventLog:
    def __init__(
        self,
        store: SnapshotStore,
        max_logs: int = MAX_LOGS,
        flush_interval: float = 0.0,
        user_id: str | None = "anonymous-user",
        clock: Callable[[], datetime] = utcnow,
        announce: bool = True,
    ):
        self.max_logs = max_logs
        self.user_id = user_id
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: deque[LogEntry] = deque(maxlen=max_logs)
        self._writer = SnapshotWriter(
            store, LOGS_KEY, self._dump, on_error=self._on_write_error, interval=flush_interval
        )
        self._load(store)
        if announce:
            self.info("Logger initialized", {"maxLogs": max_logs}, "LOGGER_INIT")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _load(self, store: SnapshotStore) -> None:
        try:
            stored = store.load(LOGS_KEY)
            entries = entry_list.validate_python(stored) if stored else []
        except Exception:
            logger.exception("Failed to load logs")
            return
        # stored newest first; the deque head is the newest entry
        self._entries.extend(entries[: self.max_logs])

    def _dump(self) -> list[dict[str, Any]]:
        with self._lock:
            return [entry.model_dump(mode="json", by_alias=True) for entry in self._entries]

    def _on_write_error(self, exc: Exception) -> None:
        # Reported to stdlib logging only: recording it here would retry the same write.
        logger.error("Failed to persist logs: %s", exc)

    def record(
        self,
        level: LogLevel | str,
        message: str,
        context: dict[str, Any] | None = None,
        action: str | None = None,
    ) -> LogEntry:
        level = LogLevel(level)
        entry = LogEntry(
            id=uuid.uuid4().hex,
            timestamp=self._clock(),
            level=level,
            message=message,
            context=jsonable(context),
            action=action,
            user_id=self.user_id,
        )
        with self._lock:
            self._entries.appendleft(entry)
            self._writer.mark_dirty()
        logger.log(STDLIB_LEVELS[level], "%s [%s] %s", message, action or "-", context or {})
        return entry

    def info(self, message: str, context: dict[str, Any] | None = None, action: str | None = None) -> LogEntry:
        return self.record(LogLevel.INFO, message, context, action)

    def warn(self, message: str, context: dict[str, Any] | None = None, action: str | None = None) -> LogEntry:
        return self.record(LogLevel.WARN, message, context, action)

    def error(self, message: str, context: dict[str, Any] | None = None, action: str | None = None) -> LogEntry:
        return self.record(LogLevel.ERROR, message, context, action)

    def debug(self, message: str, context: dict[str, Any] | None = None, action: str | None = None) -> LogEntry:
        return self.record(LogLevel.DEBUG, message, context, action)

    def get_all(self) -> list[LogEntry]:
        """All entries, newest first. The list is a copy; entries are immutable."""
        with self._lock:
            return list(self._entries)

    def query(self, level: LogLevel | str | None = None, term: str | None = None) -> list[LogEntry]:
        """Entries of ``level`` whose message, action or context contains ``term`` (case-insensitive)."""
        entries = self.get_all()
        if level is not None:
            level = LogLevel(level)
            entries = [entry for entry in entries if entry.level == level]
        if term:
            needle = term.lower()
            entries = [entry for entry in entries if needle in _haystack(entry)]
        return entries

    def counts_by_level(self) -> dict[str, int]:
        counts = {level.value: 0 for level in LogLevel}
        for entry in self.get_all():
            counts[entry.level.value] += 1
        return counts

    def export(self) -> list[dict[str, Any]]:
        data = self._dump()
        self.info("Logs exported", {"count": len(data)}, "LOGS_EXPORTED")
        return data

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._writer.discard()
        self.info("Logs cleared by user", {}, "CLEAR_LOGS")

    def flush(self) -> bool:
        return self._writer.flush()

    def close(self) -> None:
        self._writer.close()


def jsonable(context: dict[str, Any] | None) -> dict[str, Any] | None:
    """Context as plain JSON values; anything unknown becomes its str()."""
    if context is None:
        return None
    return to_jsonable_python(context, fallback=str)


def _haystack(entry: LogEntry) -> str:
    context = json.dumps(entry.context or {}, default=str)
    return " ".join((entry.message, entry.action or "", context)).lower()
