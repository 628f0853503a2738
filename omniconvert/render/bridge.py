"""
Render bridge: the hidden, attempt-scoped render container.

A session owns one RenderBridge. Rendering writes the laid-out surface into
the bridge's single slot (replacing whatever was there) and only returns
once the surface has settled, so the raster encoder always captures a final
layout.
"""

import asyncio
from typing import Callable, Hashable, Optional, Sequence

from ..config import RenderConfig
from ..content.nodes import Block
from ..utils.error_handling import RenderError
from ..utils.logging_config import get_logger
from .fonts import FontBook
from .layout import LayoutEngine, RenderSurface

logger = get_logger()

EXPORT_NODE_LOST = "Export node lost: the render surface is no longer available."

_UNSET = object()


async def wait_until_stable(
    measure: Callable[[], Optional[Hashable]],
    min_delay: float = 0.0,
    poll_interval: float = 0.05,
    timeout: float = 10.0
) -> Hashable:
    """
    Wait until ``measure()`` reports the same value twice in a row.

    ``measure`` returns None while the surface is not laid out yet and may
    raise to abort the wait. At least ``min_delay`` seconds pass before the
    wait can finish.

    Returns:
        The settled measurement

    Raises:
        RenderError: If the measurement has not settled after ``timeout``
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    previous = _UNSET

    while True:
        current = measure()
        elapsed = loop.time() - started
        if current is not None and current == previous and elapsed >= min_delay:
            return current
        if elapsed >= timeout:
            raise RenderError("The render surface did not settle in time.")
        previous = current
        await asyncio.sleep(poll_interval)


class RenderBridge:
    """Holds the render surface of the current attempt."""

    def __init__(self, config: Optional[RenderConfig] = None, fonts: Optional[FontBook] = None):
        self.config = config or RenderConfig.from_env()
        self.engine = LayoutEngine(self.config, fonts)
        self._surface: Optional[RenderSurface] = None
        self._owner: Optional[str] = None

    @property
    def occupied(self) -> bool:
        return self._surface is not None

    async def render(self, attempt_id: str, blocks: Sequence[Block]) -> RenderSurface:
        """Lay ``blocks`` out for ``attempt_id``, replacing any previous content."""
        self.clear()
        self._surface = self.engine.layout(blocks)
        self._owner = attempt_id

        await wait_until_stable(
            lambda: self._measure(attempt_id),
            min_delay=self.config.settle_delay,
            poll_interval=self.config.poll_interval,
            timeout=self.config.settle_timeout,
        )

        surface = self.surface(attempt_id)
        logger.debug(f"Render surface for attempt {attempt_id}: {surface.width}x{surface.height}px, {len(surface.runs)} runs")
        return surface

    def surface(self, attempt_id: str) -> RenderSurface:
        """The settled surface of ``attempt_id``."""
        if self._surface is None or self._owner != attempt_id:
            raise RenderError(EXPORT_NODE_LOST)
        return self._surface

    def clear(self, attempt_id: Optional[str] = None):
        """Empty the container, optionally only if ``attempt_id`` still owns it."""
        if attempt_id is not None and self._owner != attempt_id:
            return
        self._surface = None
        self._owner = None

    def _measure(self, attempt_id: str):
        return self.surface(attempt_id).size
