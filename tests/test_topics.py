import logging

import pytest

from busload.topics import RoundRobinTopics, expand, expand_all, leaf_topic, topic_matches


class TestExpand:
    def test_zero_count_passes_pattern_through(self):
        assert expand("TEST.BULK.*", 0, 7) == ["TEST.BULK.*"]

    def test_expands_in_index_order(self):
        assert expand("A.*.B", 3, 10) == ["A.T10.B", "A.T11.B", "A.T12.B"]

    def test_pattern_without_marker_ignores_count(self):
        assert expand("A.B", 5, 0) == ["A.B"]

    def test_only_first_marker_is_expanded(self, caplog):
        with caplog.at_level(logging.WARNING):
            topics = expand("A.*.*", 2, 0)
        assert topics == ["A.T0.*", "A.T1.*"]
        assert "2 wildcard markers" in caplog.text

    def test_expand_all_keeps_pattern_order(self):
        topics = expand_all(["X.*", "PLAIN", "Y.*"], 2, 3)
        assert topics == ["X.T3", "X.T4", "PLAIN", "Y.T3", "Y.T4"]

    def test_leaf_topic(self):
        assert leaf_topic("TEST.BULK.*", 4, 10) == "TEST.BULK.T14"


class TestRoundRobinTopics:
    def test_cycles_leaves_from_start(self):
        topics = RoundRobinTopics("W.*", 3, 5)
        assert [next(topics) for _ in range(7)] == [
            "W.T5", "W.T6", "W.T7", "W.T5", "W.T6", "W.T7", "W.T5",
        ]

    def test_zero_count_yields_pattern(self):
        topics = RoundRobinTopics("W.*", 0, 5)
        assert [next(topics) for _ in range(3)] == ["W.*"] * 3

    def test_plain_topic_yields_itself(self):
        topics = RoundRobinTopics("PLAIN.TOPIC", 4, 0)
        assert next(topics) == "PLAIN.TOPIC"
        assert next(topics) == "PLAIN.TOPIC"

    def test_reset_returns_to_first_leaf(self):
        topics = RoundRobinTopics("W.*", 3, 5)
        assert [next(topics), next(topics)] == ["W.T5", "W.T6"]
        topics.reset()
        assert next(topics) == "W.T5"


@pytest.mark.parametrize(
    "pattern,topic,expected",
    [
        ("A.B", "A.B", True),
        ("A.B", "A.C", False),
        ("A.*", "A.T1", True),
        ("A.*", "A.T1.X", False),
        ("A.*.C", "A.B.C", True),
        ("A.>", "A.B", True),
        ("A.>", "A.B.C.D", True),
        ("A.>", "A", False),
        ("A.B.C", "A.B", False),
    ],
)
def test_topic_matches(pattern, topic, expected):
    assert topic_matches(pattern, topic) is expected
