from .recorder import RunRecorder
from .statistics import messages_per_second, summarize

__all__ = ["RunRecorder", "messages_per_second", "summarize"]
