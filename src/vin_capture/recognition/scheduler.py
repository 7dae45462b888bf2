"""
Frame Scheduling
================

The recognition loop never sleeps or spins; between attempts it asks a
``FrameScheduler`` to run a callback at the next frame slot. The returned
handle is cancelled by the session teardown.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class FrameHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...


class FrameScheduler(ABC):
    @abstractmethod
    def request_frame(self, callback: Callable[[], Any]) -> FrameHandle:
        """Run ``callback`` on the next frame slot."""
        ...


class AsyncioFrameScheduler(FrameScheduler):
    """Frame slots at a fixed rate on the running event loop."""

    def __init__(self, fps: float = 30.0, loop: Optional[asyncio.AbstractEventLoop] = None):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.interval = 1.0 / fps
        self._loop = loop

    def request_frame(self, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.interval, callback)


FrameHandle.register(asyncio.Handle)
