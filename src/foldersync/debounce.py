"""
Folder Sync - Debounce Scheduler

Trailing-edge debounce on the running asyncio loop: every schedule() call
restarts the window, and only the last call in a burst fires.
"""
import asyncio
from typing import Awaitable, Callable, Optional, Set

from loguru import logger


class Debouncer:
    """
    Coalesces bursts of requests into one call of an async callback.
    
    A continuous stream of schedule() calls postpones the callback
    indefinitely; that is the intended trade-off for burst coalescing.
    
    Usage:
        debouncer = Debouncer(reconciler.refetch, delay_ms=50)
        debouncer.schedule()      # fires 50 ms from now
        debouncer.schedule()      # window restarts: fires 50 ms from this call
        debouncer.cancel()        # nothing fires
    """
    
    def __init__(self, callback: Callable[[], Awaitable[None]], delay_ms: float = 50, name: str = "Debouncer"):
        self._callback = callback
        self.delay_ms = delay_ms
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self.fire_count = 0
    
    @property
    def pending(self) -> bool:
        return self._handle is not None
    
    def schedule(self, delay_ms: Optional[float] = None) -> None:
        """Restart the window; must be called from inside the running loop."""
        self.cancel()
        delay = self.delay_ms if delay_ms is None else delay_ms
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay / 1000, self._fire)
    
    def cancel(self) -> None:
        """Drop the pending call, if any. Callbacks already running are left alone."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
    
    def _fire(self) -> None:
        self._handle = None
        self.fire_count += 1
        task = asyncio.ensure_future(self._callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
    
    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"{self.name}: debounced call failed: {task.exception()}")
