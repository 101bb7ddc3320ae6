"""Snapshot persistence.

A snapshot store keeps whole JSON documents under a handful of keys. The
registry writes its full mapping under ``shortened-urls`` and the event log its
buffer under ``app-logs``. :class:`SnapshotWriter` decides *when* those writes
happen: immediately, or debounced on a timer with an explicit flush.
"""

import json
import logging
import threading
from typing import Any, Callable

from quicklinks import models

logger = logging.getLogger("quicklinks.storage")

URLS_KEY = "shortened-urls"
LOGS_KEY = "app-logs"


class SnapshotStore:
    """Key-value store of JSON snapshots."""

    def load(self, key: str) -> Any | None:
        raise NotImplementedError

    def save(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemorySnapshotStore(SnapshotStore):
    """Keeps serialized snapshots in a dict. Used by tests and for embedding."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        for key, value in (initial or {}).items():
            self.save(key, value)

    def load(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def save(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def raw(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)


class SqlSnapshotStore(SnapshotStore):
    """Stores snapshots as rows of the ``snapshots`` table."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def load(self, key: str) -> Any | None:
        with self._session_factory() as db:
            row = db.query(models.Snapshot).filter_by(key=key).first()
            if not row:
                return None
            return json.loads(row.value)

    def save(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._session_factory() as db:
            row = db.query(models.Snapshot).filter_by(key=key).first()
            if row:
                row.value = raw
            else:
                db.add(models.Snapshot(key=key, value=raw))
            db.commit()

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            db.query(models.Snapshot).filter_by(key=key).delete()
            db.commit()


class SnapshotWriter:
    """Writes ``dump()`` to ``store[key]`` whenever its owner marks it dirty.

    With ``interval == 0`` every :meth:`mark_dirty` writes straight through.
    Otherwise the first mark starts a timer and later marks ride along with it,
    so a burst of mutations costs a single serialization. :meth:`close` is the
    flush-on-shutdown hook.

    ``dump`` is called without holding the writer's own locks, so it may take
    the owner's lock freely. Write failures go to ``on_error`` and are never
    raised.
    """

    def __init__(
        self,
        store: SnapshotStore,
        key: str,
        dump: Callable[[], Any],
        on_error: Callable[[Exception], None] | None = None,
        interval: float = 0.0,
    ):
        self.store = store
        self.key = key
        self.interval = interval
        self._dump = dump
        self._on_error = on_error
        self._state_lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._dirty = False
        self._timer: threading.Timer | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._state_lock:
            return self._dirty

    def mark_dirty(self) -> None:
        with self._state_lock:
            self._dirty = True
            write_now = self.interval <= 0 or self._closed
            timer = None
            if not write_now and self._timer is None:
                timer = self._timer = threading.Timer(self.interval, self.flush)
                timer.daemon = True
        if write_now:
            self.flush()
        elif timer is not None:
            timer.start()

    def flush(self) -> bool:
        """Write the current snapshot if anything changed. Returns False on a failed write."""
        with self._state_lock:
            if not self._dirty:
                return True
            self._dirty = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        try:
            payload = self._dump()
        except Exception as exc:
            self._report(exc)
            return False
        with self._io_lock:
            try:
                self.store.save(self.key, payload)
            except Exception as exc:
                self._report(exc)
                return False
        return True

    def discard(self) -> None:
        """Drop the pending write and remove the stored snapshot."""
        with self._state_lock:
            self._dirty = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        with self._io_lock:
            try:
                self.store.delete(self.key)
            except Exception as exc:
                self._report(exc)

    def close(self) -> None:
        with self._state_lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self.flush()

    def _report(self, exc: Exception) -> None:
        if self._on_error is None:
            logger.error("Failed to write snapshot %s: %s", self.key, exc)
            return
        self._on_error(exc)
