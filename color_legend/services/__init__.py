from .loop_scheduler import LoopScheduler
from .storage import JsonFileStorage, MemoryStorage, StorageBackend
from .watch_timers import WatchTimers

__all__ = ["JsonFileStorage", "LoopScheduler", "MemoryStorage", "StorageBackend", "WatchTimers"]
