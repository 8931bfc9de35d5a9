import asyncio
import logging
from threading import Lock

from ..exceptions import CounterUnderflowError

logger = logging.getLogger(__name__)


class OutstandingCounter:
    """
    Non-negative counter with a "reached zero" notification.

    Used for in-flight sends (the drain gate) and for live burst pacers
    (the shutdown gate). Owned by a single run and passed to the components
    that mutate it.

    CONCURRENCY:
    - Value updates are serialized with a lock so the counter stays exact
      when completions are delivered from broker worker threads
    - Waiters are woken on every transition to zero and re-check the value
      at least every poll interval
    """

    def __init__(self, name: str = "outstanding"):
        self.name = name
        self._value = 0
        self._lock = Lock()
        self._zero = asyncio.Event()
        self._zero.set()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increment(self, amount: int = 1) -> int:
        if amount < 0:
            raise ValueError("Increment amount must be non-negative")
        with self._lock:
            self._value += amount
            if self._value > 0:
                self._zero.clear()
            return self._value

    def decrement(self) -> int:
        with self._lock:
            if self._value == 0:
                raise CounterUnderflowError(
                    f"Counter '{self.name}' decremented below zero"
                )
            self._value -= 1
            if self._value == 0:
                self._zero.set()
            return self._value

    def is_zero(self) -> bool:
        with self._lock:
            return self._value == 0

    async def wait_for_zero(self, poll_interval: float = 0.1) -> None:
        """Block until the counter reads zero."""
        while not self.is_zero():
            try:
                await asyncio.wait_for(self._zero.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                logger.debug(f"Waiting on {self.name}: {self.value} remaining")

    def __repr__(self) -> str:
        return f"OutstandingCounter(name={self.name!r}, value={self.value})"
