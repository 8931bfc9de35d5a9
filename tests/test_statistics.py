import itertools

import pytest
from pydantic import ValidationError

from busload.metrics import RunRecorder, summarize


def test_summarize_basic_metrics():
    result = summarize([10, 30, 20], 1000)
    assert result.count == 3
    assert result.min_ms == 10
    assert result.max_ms == 30
    assert result.mean_ms == 20
    assert result.messages_processed == 3
    assert result.messages_per_second == pytest.approx(3.0)


def test_summarize_empty_samples():
    result = summarize([], 1000)
    assert result.count == 0
    assert result.min_ms == 0
    assert result.max_ms == 0
    assert result.mean_ms == 0
    assert result.messages_per_second == 0


def test_zero_duration_has_zero_throughput():
    result = summarize([5, 6], 0, messages_processed=100)
    assert result.messages_per_second == 0
    assert result.count == 2


def test_permutation_invariance():
    samples = [4.0, 1.5, 9.0, 3.25]
    expected = summarize(samples, 500)
    for ordering in itertools.permutations(samples):
        assert summarize(list(ordering), 500) == expected


def test_messages_processed_overrides_sample_count():
    result = summarize([1.0], 2000, messages_processed=50, failures=3)
    assert result.messages_per_second == pytest.approx(25.0)
    assert result.failures == 3


def test_percentiles_use_nearest_rank():
    samples = list(range(100, 0, -1))
    result = summarize(samples, 1000)
    assert result.p50_ms == 51
    assert result.p95_ms == 96
    assert result.p99_ms == 100


def test_input_is_not_mutated():
    samples = [3, 1, 2]
    summarize(samples, 10)
    assert samples == [3, 1, 2]


def test_result_is_immutable():
    result = summarize([1, 2], 10)
    with pytest.raises(ValidationError):
        result.count = 5


class TestRunRecorder:
    def test_receive_records_latency_and_window(self):
        recorder = RunRecorder()
        recorder.record_receive(send_time_ms=1000.0, received_ms=1012.5)
        recorder.record_receive(received_ms=1100.0)
        recorder.record_receive(send_time_ms=1090.0, received_ms=1110.0)

        assert recorder.messages_received == 3
        assert recorder.samples() == [12.5, 20.0]
        assert recorder.receive_window_ms == pytest.approx(97.5)

    def test_send_tallies(self):
        recorder = RunRecorder()
        recorder.record_send(True)
        recorder.record_send(True)
        recorder.record_send(False)
        assert recorder.messages_sent == 2
        assert recorder.send_failures == 1

    def test_duration_before_start_is_zero(self):
        assert RunRecorder().duration_ms == 0.0
