from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClickEvent(CamelModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    user_agent: str | None = None
    referrer: str | None = None


class LinkRecord(CamelModel):
    """A short link as stored in the ``shortened-urls`` snapshot.

    Snapshots written by the old browser demo used ``customCode``, ``clicks``
    and ``lastAccessed``; those keys are still accepted on load.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    original_url: str
    short_code: str
    is_custom_code: bool = Field(
        False,
        validation_alias=AliasChoices("isCustomCode", "customCode", "is_custom_code"),
        serialization_alias="isCustomCode",
    )
    created_at: datetime
    click_count: int = Field(
        0,
        ge=0,
        validation_alias=AliasChoices("clickCount", "clicks", "click_count"),
        serialization_alias="clickCount",
    )
    last_accessed_at: datetime | None = Field(
        None,
        validation_alias=AliasChoices("lastAccessedAt", "lastAccessed", "last_accessed_at"),
        serialization_alias="lastAccessedAt",
    )
    click_history: tuple[ClickEvent, ...] = ()


class LinkOut(LinkRecord):
    short_url: str | None = None


class LinkStats(CamelModel):
    total_urls: int
    total_clicks: int
    top_urls: list[LinkRecord]
    recent_activity: list[LinkRecord]


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogEntry(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    level: LogLevel
    message: str
    context: dict[str, Any] | None = None
    action: str | None = None
    user_id: str | None = None


# ---------- API payloads ----------

class LinkCreate(CamelModel):
    original_url: str
    custom_code: str | None = None


class ClickIn(CamelModel):
    user_agent: str | None = None
    referrer: str | None = None


class ClickOut(CamelModel):
    ok: bool
    click_count: int


class MessageOut(BaseModel):
    ok: bool
    detail: str
