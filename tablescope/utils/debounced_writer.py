"""
Debounced writer for batching file write operations

Only the last payload written before the delay elapses is persisted; earlier
payloads are replaced, not queued. At most one write runs at a time.
"""

import asyncio
from typing import Awaitable, Callable, Generic, Optional, Set, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
WriteFn = Callable[[T], Awaitable[None]]

DEFAULT_DELAY_MS = 500


class DebouncedWriter(Generic[T]):
    """Coalesces rapid writes of one logical document into a single write"""

    def __init__(self, write_fn: WriteFn, delay_ms: int = DEFAULT_DELAY_MS, name: str = "writer"):
        self._write_fn = write_fn
        self.delay = delay_ms / 1000
        self.name = name
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[T] = None
        self._has_pending = False
        self._dirty = False
        self._writing = False
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def writing(self) -> bool:
        return self._writing

    def write(self, data: T) -> None:
        """Replace the pending payload and restart the delay"""
        self._pending = data
        self._has_pending = True
        self._dirty = True
        self._schedule()

    def _schedule(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self) -> None:
        """Write now if dirty and no write is in flight"""
        self._cancel_timer()

        if not self._dirty or not self._has_pending or self._writing:
            return

        self._writing = True
        data = self._pending
        self._dirty = False

        try:
            await self._write_fn(data)
        except Exception:
            # Persistence failures must not take the session down
            logger.exception(f"Debounced write failed for {self.name}")
        finally:
            self._writing = False
            if self._dirty:
                self._schedule()

    async def drain(self) -> None:
        """Flush until nothing is pending, waiting out an in-flight write"""
        while True:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await self.flush()
            if not self._dirty and not self._writing and not self._tasks:
                self._cancel_timer()
                return
            await asyncio.sleep(0.01)

    def cancel(self) -> None:
        """Drop the pending payload without writing it"""
        self._cancel_timer()
        self._pending = None
        self._has_pending = False
        self._dirty = False
