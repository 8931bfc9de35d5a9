from collections import deque
from typing import Deque, Generic, List, TypeVar
from threading import Lock

T = TypeVar('T')


class RingBuffer(Generic[T]):
    """Bounded, thread-safe history of the most recent items."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("Capacity must be positive")
        self._buffer: Deque[T] = deque(maxlen=capacity)
        self._total = 0
        self._lock = Lock()
    
    def append(self, item: T) -> None:
        with self._lock:
            self._buffer.append(item)
            self._total += 1
    
    def get_last_n(self, n: int) -> List[T]:
        with self._lock:
            if n <= 0:
                return []
            items = list(self._buffer)
            return items[-n:]
    
    def total_appended(self) -> int:
        """Number of items ever appended, including evicted ones."""
        with self._lock:
            return self._total
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)
