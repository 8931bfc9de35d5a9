class BusloadError(Exception):
    """Base class for harness errors."""


class BrokerError(BusloadError):
    """Failure reported by a broker client operation."""

    def __init__(self, message: str, code: str = "BROKER_ERROR"):
        super().__init__(message)
        self.code = code


class CounterUnderflowError(BusloadError, RuntimeError):
    """A counter was decremented without a matching increment."""


class RunAborted(BusloadError):
    """A session-level failure stopped the run before it could complete."""
