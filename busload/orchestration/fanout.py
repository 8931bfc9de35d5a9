"""
Concurrent fan-out with a single joined completion.

Every item gets its own task; each completion lands in the slot of the
item's position, bumps the job's completion counter, and the job finishes
when the counter reaches the item count. Failures are recorded per slot and
never abort the batch.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from threading import Lock
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from ..events import EventKind, EventLog

logger = logging.getLogger(__name__)

T = TypeVar('T')
H = TypeVar('H')


@dataclass
class ResourceSlot(Generic[T, H]):
    index: int
    item: T
    handle: Optional[H] = None
    error: Optional[BaseException] = None
    done: bool = False

    @property
    def ok(self) -> bool:
        return self.done and self.error is None


class FanoutJob(Generic[T, H]):
    """
    One batch of concurrent create or stop attempts.

    ``op`` is called once per item; ``describe`` renders an item for
    diagnostics. ``action`` is ``"create"`` or ``"stop"`` and selects which
    diagnostic event a success emits.
    """

    def __init__(
        self,
        items: Sequence[T],
        op: Callable[[T], Awaitable[H]],
        events: Optional[EventLog] = None,
        describe: Callable[[T], str] = str,
        resource: str = "resource",
        action: str = "create",
    ):
        self._items = list(items)
        self._op = op
        self._events = events
        self._describe = describe
        self._resource = resource
        self._action = action
        self._slots: List[ResourceSlot[T, H]] = [
            ResourceSlot(index=i, item=item) for i, item in enumerate(self._items)
        ]
        self._completed = 0
        self._lock = Lock()
        self._finished = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._started = False

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def slots(self) -> List[ResourceSlot[T, H]]:
        return list(self._slots)

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def handles(self) -> List[Optional[H]]:
        return [slot.handle if slot.ok else None for slot in self._slots]

    async def run(self) -> List[Optional[H]]:
        """Dispatch every attempt and wait until all of them have completed."""
        if self._started:
            raise RuntimeError("FanoutJob can only be run once")
        self._started = True

        if not self._items:
            self._finished.set()
            return []

        # All attempts are in flight before the first completion is handled.
        for index, item in enumerate(self._items):
            task = asyncio.ensure_future(self._invoke(item))
            task.add_done_callback(partial(self._on_complete, index))
            self._tasks.append(task)

        await self._finished.wait()
        return self.handles()

    async def _invoke(self, item: T) -> H:
        return await self._op(item)

    def _on_complete(self, index: int, task: asyncio.Task) -> None:
        slot = self._slots[index]
        label = self._describe(slot.item)

        if task.cancelled():
            slot.error = asyncio.CancelledError(f"{self._action} cancelled")
        else:
            error = task.exception()
            if error is not None:
                slot.error = error
            else:
                slot.handle = task.result()
        slot.done = True

        if self._events is not None:
            if slot.error is not None:
                self._events.emit(
                    EventKind.RESOURCE_FAILED,
                    f"Error during {self._action} of {self._resource} on {label}",
                    topic=label,
                    error=slot.error,
                    index=index,
                    action=self._action,
                )
            elif self._action == "create":
                self._events.emit(
                    EventKind.RESOURCE_CREATED,
                    f"Created {self._resource} on {label}",
                    topic=label,
                    index=index,
                )
            else:
                self._events.emit(
                    EventKind.RESOURCE_STOPPED,
                    f"Deleted {self._resource} on {label}",
                    topic=label,
                    index=index,
                )
        elif slot.error is not None:
            logger.warning(f"{self._action} of {self._resource} on {label} failed: {slot.error}")

        with self._lock:
            self._completed += 1
            all_done = self._completed == len(self._items)

        if all_done:
            self._finished.set()


async def fanout(
    items: Sequence[T],
    op: Callable[[T], Awaitable[H]],
    events: Optional[EventLog] = None,
    describe: Callable[[T], str] = str,
    resource: str = "resource",
    action: str = "create",
) -> List[Optional[H]]:
    """Run ``op`` over ``items`` concurrently; slot ``i`` holds item ``i``'s handle or None."""
    job: FanoutJob[T, H] = FanoutJob(
        items, op, events=events, describe=describe, resource=resource, action=action
    )
    return await job.run()
