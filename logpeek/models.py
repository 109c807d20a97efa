"""Log entry, parsed record, filter and query result dataclasses."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ParsedRecord:
    time: datetime | None = None
    level: str = ""
    message: str = ""
    source: str = ""
    fields: dict[str, Any] = field(default_factory=dict)
    format: str = "text"  # "json" when the line decoded as an object

    def to_dict(self) -> dict[str, Any]:
        """Serialize, dropping empty members for cleaner JSON."""
        out: dict[str, Any] = {}
        if self.time is not None:
            out["time"] = self.time.isoformat()
        if self.level:
            out["level"] = self.level
        if self.message:
            out["message"] = self.message
        if self.source:
            out["source"] = self.source
        if self.fields:
            out["fields"] = self.fields
        out["format"] = self.format
        return out


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime  # ingestion time, not the time found in the line
    raw: str
    parsed: ParsedRecord | None = None
    id: int = 0          # assigned by RingBuffer.add

    @property
    def level(self) -> str:
        return self.parsed.level if self.parsed else ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "raw": self.raw,
        }
        if self.parsed is not None:
            out["parsed"] = self.parsed.to_dict()
        return out


@dataclass(frozen=True)
class LogFilter:
    search: str = ""
    levels: tuple[str, ...] = ()
    regex: bool = False
    after_id: int = 0  # historical queries only
    limit: int = 0     # historical queries only; <= 0 means the default

    @property
    def is_empty(self) -> bool:
        return not self.search and not self.levels

    @classmethod
    def from_dict(cls, data: Any) -> "LogFilter":
        """Build a filter from a client message, ignoring malformed members."""
        if not isinstance(data, dict):
            return cls()

        search = data.get("search")
        levels = data.get("levels")
        if isinstance(levels, str):
            levels = [levels]
        if not isinstance(levels, (list, tuple)):
            levels = []

        return cls(
            search=search if isinstance(search, str) else "",
            levels=tuple(lvl for lvl in levels if isinstance(lvl, str) and lvl),
            regex=data.get("regex") is True,
            after_id=_non_negative_int(data.get("afterId")),
            limit=_int_or_zero(data.get("limit")),
        )


@dataclass
class QueryResult:
    entries: list[LogEntry]
    total: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "logs": [entry.to_dict() for entry in self.entries],
            "total": self.total,
            "hasMore": self.has_more,
        }


def _int_or_zero(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _non_negative_int(value: Any) -> int:
    return max(_int_or_zero(value), 0)
