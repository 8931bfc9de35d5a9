from .time_utils import format_clock, get_current_timestamp, now_ms
from .ring_buffer import RingBuffer
from .validation import (
    WILDCARD_MARKER,
    count_wildcard_markers,
    is_wildcard_topic,
    validate_topic_name,
)

__all__ = [
    "get_current_timestamp",
    "now_ms",
    "format_clock",
    "RingBuffer",
    "WILDCARD_MARKER",
    "count_wildcard_markers",
    "is_wildcard_topic",
    "validate_topic_name",
]
