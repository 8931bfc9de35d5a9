import pytest
from pydantic import ValidationError

from busload.broker import AckMode, QoS
from busload.config import RunConfig, RunMode, Transport


def test_defaults():
    config = RunConfig()
    assert config.mode == RunMode.PUBLISH
    assert config.transport == Transport.MEMORY
    assert config.burst == 10
    assert config.delay_ms == 10
    assert config.duration_s == 30
    assert config.wc_topic_count == 1
    assert config.topic_list() == ["TEST.BULK.*"]


def test_ping_mode_defaults_to_ping_topic():
    assert RunConfig(mode=RunMode.PING).topic_list() == ["PING"]


def test_from_env_reads_prefixed_variables():
    env = {
        "BUSLOAD_MODE": "sub",
        "BUSLOAD_TOPICS": "TEST.BULK.*:TEST.OTHER",
        "BUSLOAD_WC_TOPIC_COUNT": "20",
        "BUSLOAD_WC_TOPIC_START": "10",
        "BUSLOAD_QOS": "GD",
        "BUSLOAD_SUB_NAME": "durable",
        "BUSLOAD_ACK_MODE": "manual",
        "BUSLOAD_SECONDARY_ENDPOINT": "  ",
        "BUSLOAD_VERBOSE": "true",
        "UNRELATED": "x",
    }
    config = RunConfig.from_env(env)

    assert config.mode == RunMode.SUBSCRIBE
    assert config.topics == ["TEST.BULK.*", "TEST.OTHER"]
    assert config.wc_topic_count == 20
    assert config.wc_topic_start == 10
    assert config.qos == QoS.GUARANTEED_DELIVERY
    assert config.sub_name == "durable"
    assert config.ack_mode == AckMode.MANUAL
    assert config.secondary_endpoint is None
    assert config.verbose is True


def test_overrides_win_over_environment():
    config = RunConfig.from_env({"BUSLOAD_BURST": "50"}, burst=5)
    assert config.burst == 5


@pytest.mark.parametrize("field, value", [
    ("burst", 0),
    ("delay_ms", -1),
    ("duration_s", 0),
    ("wc_topic_count", -1),
    ("ping_count", 0),
    ("topics", ["bad topic"]),
])
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        RunConfig(**{field: value})
