from .results import RunResult
from .messages import LoadMessage, MessageType

__all__ = ["RunResult", "LoadMessage", "MessageType"]
