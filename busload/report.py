from typing import List

from .config import RunConfig, RunMode
from .events import EventKind, EventLog
from .metrics.recorder import RunRecorder
from .models.results import RunResult


def print_config(config: RunConfig) -> None:
    print("Running with options:")
    print(f"  mode         : {config.mode.value}")
    print(f"  transport    : {config.transport.value}")
    print(f"  username     : {config.username}")
    print(f"  primary      : {config.primary_endpoint}")
    print(f"  secondary    : {config.secondary_endpoint}")
    print(f"  clientName   : {config.client_name}")
    print(f"  topics       : {' '.join(config.topic_list())}")
    print(f"  wcTopicCount : {config.wc_topic_count}")
    print(f"  wcTopicStart : {config.wc_topic_start}")
    if config.mode == RunMode.PUBLISH:
        print(f"  burst        : {config.burst}")
        print(f"  delay        : {config.delay_ms:g}")
    elif config.mode == RunMode.SUBSCRIBE:
        print(f"  qos          : {config.qos.value}")
        print(f"  name         : {config.sub_name}")
        print(f"  ackMode      : {config.ack_mode.value}")
    else:
        print(f"  count        : {config.ping_count}")
        print(f"  delay        : {config.delay_ms:g}")
    print(f"  duration     : {config.duration_s:g}")
    print(f"  verbose      : {config.verbose}")
    print("")


def _failed_resources(events: EventLog) -> List[str]:
    return [
        event.topic or "?"
        for event in events.of_kind(EventKind.RESOURCE_FAILED)
    ]


def print_results(
    config: RunConfig,
    recorder: RunRecorder,
    result: RunResult,
    events: EventLog,
) -> None:
    """Print the final report for a finished run."""
    print("\n" + "=" * 80)
    print("📊 LOAD TEST RESULTS")
    print("=" * 80)

    print(f"\n⏱️  Duration: {result.total_duration_ms / 1000:.2f}s")

    print(f"\n📨 Messages:")
    if config.mode == RunMode.PUBLISH:
        print(f"  Sent: {recorder.messages_sent:,}")
        print(f"  Send errors: {recorder.send_failures:,}")
    else:
        print(f"  Received: {recorder.messages_received:,}")
        if config.mode == RunMode.PING:
            print(f"  Sent: {recorder.messages_sent:,} ({recorder.send_failures} errors)")
        if recorder.ack_failures:
            print(f"  ACK errors: {recorder.ack_failures:,}")

    print(f"\n🚀 Throughput: {result.messages_per_second:,.3f} msg/s")

    if result.count:
        print(f"\n⚡ Latency ({result.count:,} samples):")
        print(f"  Min: {result.min_ms:.2f}ms")
        print(f"  Mean: {result.mean_ms:.2f}ms")
        print(f"  P50: {result.p50_ms:.2f}ms")
        print(f"  P95: {result.p95_ms:.2f}ms")
        print(f"  P99: {result.p99_ms:.2f}ms")
        print(f"  Max: {result.max_ms:.2f}ms")

    failed = _failed_resources(events)
    if failed:
        print(f"\n❌ Resource errors ({len(failed)}):")
        for topic in failed:
            print(f"  {topic}")

    if events.of_kind(EventKind.SESSION_CLOSE_FAILED):
        print("\n⚠️  Session close failed")

    print("\n" + "=" * 80 + "\n")
