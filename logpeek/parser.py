"""Heuristic log line parser: JSON objects first, then text patterns.

Parse order:
  1. Trimmed line starts with '{' and decodes to an object -> structured
  2. Anything else -> level keywords + first matching timestamp pattern

parse_line never raises; an unrecognized line still yields a record whose
message is the raw line.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from logpeek.models import LogEntry, ParsedRecord

# ---------------------------------------------------------------------------
# Structured-input key synonyms, checked in priority order
# ---------------------------------------------------------------------------

LEVEL_KEYS = ("level", "lvl", "severity", "log.level")
MESSAGE_KEYS = ("msg", "message", "text", "log")
TIME_KEYS = ("time", "timestamp", "ts", "@timestamp", "datetime")
SOURCE_KEYS = ("logger", "source", "name", "caller", "component")

# Numeric timestamps above this are epoch milliseconds
_EPOCH_MILLIS_THRESHOLD = 1e12

# Structured-path level aliases (TRACE only appears here)
_LEVEL_ALIASES = {
    "DBG": "DEBUG",
    "TRACE": "DEBUG",
    "INF": "INFO",
    "INFORMATION": "INFO",
    "WRN": "WARN",
    "WARNING": "WARN",
    "ERR": "ERROR",
    "CRIT": "FATAL",
    "CRITICAL": "FATAL",
    "PANIC": "FATAL",
}

# ---------------------------------------------------------------------------
# Text heuristics
# ---------------------------------------------------------------------------

LEVEL_PRIORITY = {
    "DEBUG": 1,
    "INFO": 2,
    "WARN": 3,
    "ERROR": 4,
    "FATAL": 5,
}

_LEVEL_PATTERNS = {
    "DEBUG": re.compile(r"\b(?:DEBUG|DBG)\b", re.IGNORECASE),
    "INFO": re.compile(r"\b(?:INFO|INF)\b", re.IGNORECASE),
    "WARN": re.compile(r"\b(?:WARN|WARNING|WRN)\b", re.IGNORECASE),
    "ERROR": re.compile(r"\b(?:ERROR|ERR)\b", re.IGNORECASE),
    "FATAL": re.compile(r"\b(?:FATAL|CRITICAL|CRIT|PANIC)\b", re.IGNORECASE),
}

_ISO8601_RE = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})T(?P<clock>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})?"
)
_DATETIME_RE = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2}) (?P<clock>\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?"
)
_COMBINED_LOG_RE = re.compile(r"\d{2}/\w{3}/\d{4}:\d{2}:\d{2}:\d{2}")
_SYSLOG_RE = re.compile(r"\w{3} +\d{1,2} \d{2}:\d{2}:\d{2}")


def _utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; leave aware ones alone."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _offset(value: str | None) -> timezone:
    if not value or value == "Z":
        return timezone.utc
    sign = -1 if value[0] == "-" else 1
    hours, minutes = int(value[1:3]), int(value[4:6])
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _from_iso_match(m: re.Match) -> datetime | None:
    """Build a datetime from date/clock/frac/offset groups.

    Fractions beyond microseconds are truncated.
    """
    frac = (m.group("frac") or "").ljust(6, "0")[:6]
    groups = m.groupdict()
    try:
        dt = datetime.strptime(f"{m.group('date')} {m.group('clock')}", "%Y-%m-%d %H:%M:%S")
        tz = _offset(groups.get("offset"))
    except ValueError:
        return None
    return dt.replace(microsecond=int(frac), tzinfo=tz)


def _parse_combined_log(text: str) -> datetime | None:
    """'10/Oct/2000:13:55:36' -> datetime (UTC)."""
    try:
        return _utc(datetime.strptime(text, "%d/%b/%Y:%H:%M:%S"))
    except ValueError:
        return None


def _parse_syslog(text: str) -> datetime | None:
    """'Jan  5 14:30:01' -> datetime in the current year (UTC)."""
    year = datetime.now(timezone.utc).year
    try:
        return _utc(datetime.strptime(f"{year} {text}", "%Y %b %d %H:%M:%S"))
    except ValueError:
        return None


# Tried in order; only the first pattern that matches anywhere is used
_TIMESTAMP_PATTERNS: list[tuple[re.Pattern, Callable[[re.Match], datetime | None]]] = [
    (_ISO8601_RE, _from_iso_match),
    (_DATETIME_RE, _from_iso_match),
    (_COMBINED_LOG_RE, lambda m: _parse_combined_log(m.group(0))),
    (_SYSLOG_RE, lambda m: _parse_syslog(m.group(0))),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_level(level: str) -> str:
    """Upper-case and map common aliases onto DEBUG/INFO/WARN/ERROR/FATAL.

    Unknown values pass through upper-cased.
    """
    level = level.strip().upper()
    return _LEVEL_ALIASES.get(level, level)


def parse_iso_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 string; 'Z' is accepted and naive values are UTC."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _utc(datetime.fromisoformat(text))
    except ValueError:
        m = _ISO8601_RE.fullmatch(value.strip())
        return _from_iso_match(m) if m else None


def parse_epoch(value: int | float) -> datetime | None:
    """Epoch seconds, or milliseconds when the value exceeds 1e12."""
    try:
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _coerce_time(value: Any) -> datetime | None:
    if isinstance(value, str):
        return parse_iso_timestamp(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return parse_epoch(value)
    return None


def _pop_string(data: dict, keys: tuple[str, ...]) -> str | None:
    """Remove and return the first key in ``keys`` whose value is a string."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            del data[key]
            return value
    return None


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def parse_structured(line: str) -> ParsedRecord | None:
    """Extract known fields from a JSON object line.

    Returns None when the line is not a JSON object, meaning the caller
    should fall back to the text heuristics.
    """
    stripped = line.strip()
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except (ValueError, RecursionError):
        # ValueError also covers oversized integer literals
        return None
    if not isinstance(data, dict):
        return None

    level = _pop_string(data, LEVEL_KEYS)
    message = _pop_string(data, MESSAGE_KEYS)

    time = None
    for key in TIME_KEYS:
        if key in data:
            time = _coerce_time(data.pop(key))
            break

    source = _pop_string(data, SOURCE_KEYS)

    return ParsedRecord(
        time=time,
        level=normalize_level(level) if level is not None else "",
        message=message or "",
        source=source or "",
        fields=data,
        format="json",
    )


def detect_level(line: str) -> str:
    """Return the most severe level keyword found in the line, or ''."""
    best = ""
    for level, pattern in _LEVEL_PATTERNS.items():
        if LEVEL_PRIORITY[level] > LEVEL_PRIORITY.get(best, 0) and pattern.search(line):
            best = level
    return best


def detect_timestamp(line: str) -> datetime | None:
    """Parse the first timestamp pattern (in priority order) found in the line."""
    for pattern, convert in _TIMESTAMP_PATTERNS:
        m = pattern.search(line)
        if m:
            return convert(m)
    return None


def parse_text(line: str) -> ParsedRecord:
    """Heuristic extraction for unstructured lines. Message is the whole line."""
    return ParsedRecord(
        time=detect_timestamp(line),
        level=detect_level(line),
        message=line,
    )


def parse_line(line: str) -> LogEntry:
    """Parse one raw line into an (unnumbered) LogEntry. Never raises."""
    parsed = parse_structured(line)
    if parsed is None:
        parsed = parse_text(line)
    return LogEntry(
        timestamp=datetime.now(timezone.utc),
        raw=line,
        parsed=parsed,
    )
