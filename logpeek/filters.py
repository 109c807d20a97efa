"""Filter predicates shared by historical queries and the live feed.

Both RingBuffer.query and the broadcast hub go through build_predicate, so
an entry matches a subscription exactly when it would match the same
filter in a query (minus the ID cursor, which only queries use).
"""

import logging
import re
from typing import Callable

from logpeek.models import LogEntry, LogFilter

logger = logging.getLogger(__name__)

Predicate = Callable[[LogEntry], bool]


def _match_all(entry: LogEntry) -> bool:
    return True


def compile_search(search: str, regex: bool) -> tuple[Callable[[str], bool], bool]:
    """Return (matcher, used_regex) for the given search text.

    An invalid pattern falls back to case-insensitive substring matching.
    """
    if regex and search:
        try:
            pattern = re.compile(search)
        except re.error as e:
            logger.debug("Invalid search pattern %r, using substring match: %s", search, e)
        else:
            return (lambda text: pattern.search(text) is not None), True

    needle = search.lower()
    return (lambda text: needle in text.lower()), False


def filter_by_cursor(entry: LogEntry, after_id: int) -> bool:
    """True if the entry was stored after the given ID."""
    return entry.id > after_id


def filter_by_levels(entry: LogEntry, levels: frozenset[str]) -> bool:
    """True if the entry's level is in the (upper-cased) level set."""
    level = entry.level
    return bool(level) and level.upper() in levels


def build_predicate(log_filter: LogFilter, use_cursor: bool = True) -> Predicate:
    """Compile a LogFilter into a single callable.

    Checks run in order: ID cursor, level set, search text. The regex (if
    any) is compiled once here rather than per entry.
    """
    predicates: list[Predicate] = []

    if use_cursor and log_filter.after_id > 0:
        after_id = log_filter.after_id
        predicates.append(lambda entry: filter_by_cursor(entry, after_id))

    if log_filter.levels:
        levels = frozenset(lvl.upper() for lvl in log_filter.levels)
        predicates.append(lambda entry: filter_by_levels(entry, levels))

    if log_filter.search:
        matcher, _ = compile_search(log_filter.search, log_filter.regex)
        predicates.append(lambda entry: matcher(entry.raw))

    if not predicates:
        return _match_all

    def combined(entry: LogEntry) -> bool:
        return all(p(entry) for p in predicates)

    return combined
