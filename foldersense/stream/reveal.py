"""
Paced text reveal, decoupled from network arrival timing.

Chunks arrive in bursts; the reveal advances on a fixed tick so the visible
text grows steadily. The step grows with the unrevealed backlog so a flood of
late chunks is cleared within ``catchup_window`` ticks, and idles at
``base_step`` when input is sparse.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable

logger = logging.getLogger(__name__)

RenderCallback = Callable[[str], None]


class RevealScheduler:
    """
    Reveals one in-flight message at a time.

    ``render`` receives the visible prefix after every advancing tick.
    ``on_finalize`` receives the final text once; it is deferred until the
    reveal has caught up so it never interrupts the animation.
    """

    def __init__(
        self,
        render: RenderCallback,
        on_finalize: RenderCallback | None = None,
        *,
        tick_interval: float = 0.03,
        base_step: int = 2,
        catchup_window: int = 20,
        autostart: bool = True,
    ):
        if base_step < 1 or catchup_window < 1:
            raise ValueError("base_step and catchup_window must be positive")
        self.render = render
        self.on_finalize = on_finalize
        self.tick_interval = tick_interval
        self.base_step = base_step
        self.catchup_window = catchup_window
        self.autostart = autostart

        self._key: object | None = None
        self._target = ""
        self._revealed = 0
        self._pace = base_step
        self._animating = False
        self._pending_final: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._finalized = asyncio.Event()

    @property
    def target(self) -> str:
        return self._target

    @property
    def revealed(self) -> int:
        return self._revealed

    @property
    def animating(self) -> bool:
        return self._animating

    @property
    def finalize_pending(self) -> bool:
        return self._pending_final is not None

    def _switch(self, key: object) -> None:
        self.stop()
        self._key = key
        self._target = ""
        self._revealed = 0
        self._pace = self.base_step
        self._finalized.clear()

    def update(self, key: object, text: str) -> None:
        """Set the full text received so far for message ``key``."""
        if key is not self._key:
            self._switch(key)
        if len(text) != len(self._target):
            backlog = max(0, len(text) - self._revealed)
            self._pace = max(self.base_step, math.ceil(backlog / self.catchup_window))
        self._target = text
        self._revealed = min(self._revealed, len(text))
        if self._revealed < len(text):
            self._animating = True
            self._ensure_ticker()

    def finalize(self, key: object, text: str) -> None:
        """Request the final rendering; applied now if idle, else after catch-up."""
        if key is not self._key:
            if self._key is not None and self._animating:
                logger.debug("Ignoring finalize for a message that is no longer revealed")
                return
            self._switch(key)
        self._pending_final = text
        if not self._animating:
            self._complete()

    def tick(self) -> bool:
        """Advance one step. Returns True while the reveal is still in progress."""
        if not self._animating:
            return False
        remaining = len(self._target) - self._revealed
        if remaining <= 0:
            if self._pending_final is not None:
                self._complete()
            else:
                self._animating = False
            return False
        step = max(self.base_step, math.ceil(remaining / self.catchup_window), self._pace)
        self._revealed = min(len(self._target), self._revealed + step)
        self.render(self._target[: self._revealed])
        return True

    def _complete(self) -> None:
        text = self._pending_final or ""
        self._pending_final = None
        self._animating = False
        self._target = text
        self._revealed = len(text)
        self._finalized.set()
        if self.on_finalize is not None:
            self.on_finalize(text)

    def _ensure_ticker(self) -> None:
        if not self.autostart:
            return
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            if not self.tick():
                break

    async def wait_finalized(self) -> None:
        """Wait until the current message's final rendering has been applied."""
        await self._finalized.wait()

    def stop(self) -> None:
        """Stop ticking and drop any queued finalize."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._animating = False
        self._pending_final = None


__all__ = ["RevealScheduler"]
