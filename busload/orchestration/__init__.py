from .counters import OutstandingCounter
from .fanout import FanoutJob, ResourceSlot, fanout
from .pacer import BurstPacer, PacerState
from .shutdown import ShutdownCoordinator

__all__ = [
    "BurstPacer",
    "FanoutJob",
    "OutstandingCounter",
    "PacerState",
    "ResourceSlot",
    "ShutdownCoordinator",
    "fanout",
]
