import time
from datetime import datetime


def get_current_timestamp() -> float:
    """Wall-clock seconds since the epoch."""
    return time.time()


def now_ms() -> float:
    """Wall-clock milliseconds since the epoch, as embedded in load messages."""
    return time.time() * 1000.0


def format_clock(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")
