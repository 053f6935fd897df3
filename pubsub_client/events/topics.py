"""Topic matching over dot-delimited names with `*` and trailing `**` wildcards.

    com.test.*        matches com.test.a          (exactly one segment)
    com.splatted.**   matches com.splatted.a.b.c  (one or more trailing segments)

Wildcards are whole segments only; `foo*bar` is a literal segment.
"""

from typing import Iterable

SEPARATOR = "."
SINGLE = "*"
MULTI = "**"

EVENT_PREFIX = "event:"


class LocalTopics:
    """Notifications that originate in the client. Always valid to subscribe to."""

    CONFIGURED = "configured"
    RESPONSE = "response"
    RETRY = "retry"
    UNAUTHORIZED = "unauthorized"
    NOTFOUND = "notfound"

    ALL = frozenset({CONFIGURED, RESPONSE, RETRY, UNAUTHORIZED, NOTFOUND})


def matches(event_name: str, pattern: str) -> bool:
    """True if event_name falls under pattern."""
    if event_name == pattern:
        return True
    if SINGLE not in pattern:
        return False

    name_parts = event_name.split(SEPARATOR)
    pattern_parts = pattern.split(SEPARATOR)

    if pattern_parts[-1] == MULTI:
        prefix = pattern_parts[:-1]
        # `**` must absorb at least one segment
        if len(name_parts) <= len(prefix):
            return False
        return all(
            _segment_matches(name_parts[i], part) for i, part in enumerate(prefix)
        )

    if len(name_parts) != len(pattern_parts):
        return False
    return all(
        _segment_matches(name, part) for name, part in zip(name_parts, pattern_parts)
    )


def _segment_matches(segment: str, pattern_segment: str) -> bool:
    return pattern_segment == SINGLE or segment == pattern_segment


def first_match(event_name: str, patterns: Iterable[str]) -> str | None:
    """First pattern (in the given order) that matches, or None."""
    for pattern in patterns:
        if matches(event_name, pattern):
            return pattern
    return None


def has_subscribed_topic(event_name: str, patterns: Iterable[str] | None) -> bool:
    """True if any pattern matches. No precedence among overlapping patterns."""
    if not patterns:
        return False
    return first_match(event_name, patterns) is not None


def split_subscription(name: str) -> str | None:
    """Topic part of an `event:<topic>` subscription name, else None."""
    if name.startswith(EVENT_PREFIX):
        return name[len(EVENT_PREFIX):]
    return None
