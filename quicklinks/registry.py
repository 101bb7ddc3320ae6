"""Short-link registry.

Owns the mapping from short code to :class:`~quicklinks.schemas.LinkRecord`.
Records handed out are frozen snapshots; the only way to change one is through
:meth:`LinkRegistry.record_click`, which swaps in an updated copy.
"""

import re
import secrets
import string
import threading
import uuid
from datetime import datetime
from typing import Any, Callable

from pydantic import AnyUrl, TypeAdapter, ValidationError

from quicklinks import errors, schemas
from quicklinks.eventlog import EventLog, utcnow
from quicklinks.storage import URLS_KEY, SnapshotStore, SnapshotWriter

ALPHABET = string.ascii_letters + string.digits
CODE_LENGTH = 6
MAX_CODE_LENGTH = 20
ATTEMPTS_PER_LENGTH = 10
HISTORY_LIMIT = 100
TOP_LIMIT = 10

SHORT_CODE_RE = re.compile(r"[A-Za-z0-9]{3,20}")

url_adapter = TypeAdapter(AnyUrl)
link_table = TypeAdapter(dict[str, schemas.LinkRecord])


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def is_valid_url(url: str) -> bool:
    try:
        url_adapter.validate_python(url)
    except ValidationError:
        return False
    return True


def is_valid_short_code(code: str) -> bool:
    return SHORT_CODE_RE.fullmatch(code) is not None


class LinkRegistry:
    def __init__(
        self,
        store: SnapshotStore,
        events: EventLog,
        flush_interval: float = 0.0,
        clock: Callable[[], datetime] = utcnow,
        code_factory: Callable[[int], str] = generate_code,
    ):
        self.events = events
        self._clock = clock
        self._code_factory = code_factory
        self._lock = threading.RLock()
        self._links: dict[str, schemas.LinkRecord] = {}
        self._writer = SnapshotWriter(
            store, URLS_KEY, self._dump, on_error=self._on_write_error, interval=flush_interval
        )
        self._load(store)
        self.events.info("Link registry initialized", {"existingUrls": len(self._links)}, "SERVICE_INIT")

    def __len__(self) -> int:
        with self._lock:
            return len(self._links)

    def __contains__(self, short_code: str) -> bool:
        with self._lock:
            return short_code in self._links

    # ---------- persistence ----------

    def _load(self, store: SnapshotStore) -> None:
        try:
            stored = store.load(URLS_KEY)
            if stored is None:
                return
            links = link_table.validate_python(stored)
        except Exception as exc:
            self.events.error("Failed to load URLs from storage", {"error": str(exc)}, "LOAD_STORAGE_ERROR")
            return
        self._links = {record.short_code: record for record in links.values()}
        self.events.info("URLs loaded from storage", {"count": len(self._links)}, "LOAD_STORAGE")

    def _dump(self) -> dict[str, Any]:
        with self._lock:
            return {
                code: record.model_dump(mode="json", by_alias=True)
                for code, record in self._links.items()
            }

    def _on_write_error(self, exc: Exception) -> None:
        self.events.error("Failed to save URLs to storage", {"error": str(exc)}, "SAVE_STORAGE_ERROR")

    def flush(self) -> bool:
        return self._writer.flush()

    def close(self) -> None:
        self._writer.close()

    # ---------- operations ----------

    def shorten(self, original_url: str, custom_code: str | None = None) -> schemas.LinkRecord:
        """Create a link. Raises a :class:`~quicklinks.errors.LinkError` subclass on bad input."""
        self.events.info(
            "URL shortening requested",
            {"originalUrl": original_url, "customCode": bool(custom_code), "customCodeValue": custom_code},
            "SHORTEN_REQUEST",
        )

        if not is_valid_url(original_url):
            self.events.warn("Invalid URL provided", {"originalUrl": original_url}, "INVALID_URL")
            raise errors.InvalidUrl(original_url=original_url)

        with self._lock:
            if custom_code:
                if not is_valid_short_code(custom_code):
                    self.events.warn("Invalid custom shortcode format", {"customCode": custom_code}, "INVALID_SHORTCODE")
                    raise errors.InvalidShortCode(custom_code=custom_code)
                if custom_code in self._links:
                    self.events.warn("Custom shortcode already exists", {"customCode": custom_code}, "SHORTCODE_EXISTS")
                    raise errors.ShortCodeTaken(custom_code=custom_code)
                code = custom_code
            else:
                code = self._free_code()

            record = schemas.LinkRecord(
                id=uuid.uuid4().hex,
                original_url=original_url,
                short_code=code,
                is_custom_code=bool(custom_code),
                created_at=self._clock(),
            )
            self._links[code] = record
            self._writer.mark_dirty()

        self.events.info(
            "URL shortened successfully",
            {"shortCode": code, "originalUrl": original_url, "isCustom": record.is_custom_code},
            "SHORTEN_SUCCESS",
        )
        return record

    def _free_code(self) -> str:
        # caller holds self._lock
        for length in range(CODE_LENGTH, MAX_CODE_LENGTH + 1):
            for _ in range(ATTEMPTS_PER_LENGTH):
                code = self._code_factory(length)
                if code not in self._links:
                    self.events.debug("Generated shortcode", {"shortCode": code}, "SHORTCODE_GENERATED")
                    return code
            self.events.warn("Shortcode collisions, widening code", {"length": length + 1}, "SHORTCODE_COLLISION")
        self.events.error("No free shortcode left", {"maxLength": MAX_CODE_LENGTH}, "SHORTCODE_EXHAUSTED")
        raise errors.CodeSpaceExhausted()

    def lookup(self, short_code: str) -> schemas.LinkRecord | None:
        self.events.debug("URL lookup requested", {"shortCode": short_code}, "URL_LOOKUP")
        with self._lock:
            record = self._links.get(short_code)
        if record is None:
            self.events.warn("URL not found", {"shortCode": short_code}, "URL_NOT_FOUND")
        return record

    def record_click(self, short_code: str, user_agent: str | None = None, referrer: str | None = None) -> bool:
        self.events.info(
            "Click recording requested",
            {"shortCode": short_code, "hasUserAgent": bool(user_agent), "hasReferrer": bool(referrer)},
            "RECORD_CLICK",
        )

        with self._lock:
            record = self._links.get(short_code)
            if record is None:
                self.events.warn("Cannot record click - URL not found", {"shortCode": short_code}, "CLICK_RECORD_FAILED")
                return False

            now = self._clock()
            click = schemas.ClickEvent(timestamp=now, user_agent=user_agent or None, referrer=referrer or None)
            history = record.click_history + (click,)
            record = record.model_copy(update={
                "click_count": record.click_count + 1,
                "last_accessed_at": now,
                "click_history": history[-HISTORY_LIMIT:],
            })
            self._links[short_code] = record
            self._writer.mark_dirty()

        self.events.info(
            "Click recorded successfully",
            {"shortCode": short_code, "totalClicks": record.click_count},
            "CLICK_RECORDED",
        )
        return True

    def list_all(self) -> list[schemas.LinkRecord]:
        """Every record, newest first."""
        with self._lock:
            links = list(self._links.values())
        self.events.debug("All URLs requested", {"count": len(links)}, "GET_ALL_URLS")
        return sorted(links, key=lambda record: record.created_at, reverse=True)

    def compute_stats(self) -> schemas.LinkStats:
        self.events.debug("Statistics requested", {}, "GET_STATS")
        with self._lock:
            links = list(self._links.values())

        # ties go to the newer link
        top_urls = sorted(
            (record for record in links if record.click_count > 0),
            key=lambda record: (record.click_count, record.created_at),
            reverse=True,
        )[:TOP_LIMIT]
        recent_activity = sorted(
            (record for record in links if record.last_accessed_at is not None),
            key=lambda record: (record.last_accessed_at, record.created_at),
            reverse=True,
        )[:TOP_LIMIT]

        stats = schemas.LinkStats(
            total_urls=len(links),
            total_clicks=sum(record.click_count for record in links),
            top_urls=top_urls,
            recent_activity=recent_activity,
        )
        self.events.info(
            "Statistics generated",
            {"totalUrls": stats.total_urls, "totalClicks": stats.total_clicks, "topUrlsCount": len(top_urls)},
            "STATS_GENERATED",
        )
        return stats

    def delete(self, short_code: str) -> bool:
        self.events.info("URL deletion requested", {"shortCode": short_code}, "DELETE_REQUEST")
        with self._lock:
            existed = self._links.pop(short_code, None) is not None
            if existed:
                self._writer.mark_dirty()

        if existed:
            self.events.info("URL deleted successfully", {"shortCode": short_code}, "DELETE_SUCCESS")
        else:
            self.events.warn("Cannot delete - URL not found", {"shortCode": short_code}, "DELETE_FAILED")
        return existed
