"""Tests for topic matching: exact, `*`, trailing `**`."""

import pytest

from helpers import EVENTS
from pubsub_client.events.topics import (
    first_match,
    has_subscribed_topic,
    matches,
    split_subscription,
)

TOPICS = list(EVENTS)


class TestMatches:
    """Single pattern matching."""

    def test_exact_match(self) -> None:
        assert matches("com.test.event", "com.test.event") is True

    def test_literal_pattern_without_wildcard_is_exact_only(self) -> None:
        assert matches("com.test.events", "com.test.event") is False
        assert matches("com.test", "com.test.event") is False

    def test_single_wildcard_terminal_segment(self) -> None:
        assert matches("com.test.topic.anything", "com.test.topic.*") is True

    def test_single_wildcard_requires_same_segment_count(self) -> None:
        assert matches("com.test.topic.a.b", "com.test.topic.*") is False
        assert matches("com.test.topic", "com.test.topic.*") is False

    def test_single_wildcard_interior_segment(self) -> None:
        assert matches("com.test.anything.interior", "com.test.*.interior") is True
        assert matches("com.test.anything.exterior", "com.test.*.interior") is False

    def test_double_splat_absorbs_trailing_segments(self) -> None:
        assert matches("com.splatted.a", "com.splatted.**") is True
        assert matches("com.splatted.a.b.c", "com.splatted.**") is True

    def test_double_splat_requires_at_least_one_segment(self) -> None:
        assert matches("com.splatted", "com.splatted.**") is False

    def test_double_splat_prefix_must_match(self) -> None:
        assert matches("com.other.a.b", "com.splatted.**") is False

    def test_double_splat_prefix_can_hold_single_wildcard(self) -> None:
        assert matches("com.x.tail.more", "com.*.**") is True

    def test_partial_segment_star_is_literal(self) -> None:
        assert matches("com.foobar", "com.foo*bar") is False
        assert matches("com.foo*bar", "com.foo*bar") is True

    def test_double_splat_not_last_is_literal(self) -> None:
        assert matches("com.a.b", "com.**.b") is False
        assert matches("com.**.b", "com.**.b") is True


class TestHasSubscribedTopic:
    """Any-of matching against a topic list."""

    @pytest.mark.parametrize(
        "name",
        [
            "com.test.event",
            "com.test.topic.anything",
            "com.test.anything.interior",
            "com.splatted.shortName",
            "com.splatted.a.much.longer.event.name",
        ],
    )
    def test_subscribed(self, name: str) -> None:
        assert has_subscribed_topic(name, TOPICS) is True

    def test_patterns_match_themselves(self) -> None:
        for pattern in TOPICS:
            assert has_subscribed_topic(pattern, TOPICS) is True

    def test_unsubscribed_topic(self) -> None:
        assert has_subscribed_topic("com.invalid.event", ["com.test.event"]) is False
        assert has_subscribed_topic("com.invalid.event", TOPICS) is False

    @pytest.mark.parametrize(
        "name",
        [
            "com.test.event.descendant",
            "com.test.topic.wildcard.descendant",
            "com.test.wildcard.interior.descendant",
        ],
    )
    def test_descendants_do_not_match(self, name: str) -> None:
        assert has_subscribed_topic(name, TOPICS) is False

    def test_empty_or_missing_topic_list(self) -> None:
        assert has_subscribed_topic("com.test.event", []) is False
        assert has_subscribed_topic("com.test.event", None) is False

    def test_first_match_follows_definition_order(self) -> None:
        assert first_match("a.b", ["a.*", "a.b"]) == "a.*"
        assert first_match("a.b", ["a.b", "a.*"]) == "a.b"
        assert first_match("x.y", ["a.*"]) is None


def test_split_subscription() -> None:
    assert split_subscription("event:com.test.event") == "com.test.event"
    assert split_subscription("configured") is None
