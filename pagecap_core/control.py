"""
Control process - exclusive owner of the visible-viewport capture primitive

The primitive rasterizes whatever is visible in the page's viewport at the
moment it runs. It is single-flight: an overlapping call is refused rather
than queued, and calls beyond the per-second quota are refused the way a
browser refuses visible-tab captures over its quota.
"""

import logging
import time
from typing import Any, Dict, Optional

from .exceptions import CapturePrimitiveError
from .images import encode_data_url
from .relay import Action, Responder

logger = logging.getLogger(__name__)


class CapturePrimitive:
    """Visible-viewport capture on a Playwright page"""

    def __init__(
        self,
        page,
        max_per_second: Optional[float] = 2,
        clock=time.monotonic,
    ):
        self.page = page
        self.max_per_second = max_per_second
        self._clock = clock
        self._in_flight = False
        self._recent: list = []

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _check_quota(self):
        if not self.max_per_second:
            return
        now = self._clock()
        self._recent = [ts for ts in self._recent if now - ts < 1.0]
        if len(self._recent) >= self.max_per_second:
            raise CapturePrimitiveError(
                f"This request exceeds the quota of {self.max_per_second:g} captures per second"
            )
        self._recent.append(now)

    async def capture(self) -> bytes:
        """
        Capture the visible viewport as PNG bytes.

        Raises:
            CapturePrimitiveError: a capture is already running, the quota is
                exhausted, or the browser failed to rasterize the page
        """
        if self._in_flight:
            raise CapturePrimitiveError("Viewport capture already running")
        self._check_quota()
        self._in_flight = True
        try:
            return await self.page.screenshot(type="png", full_page=False)
        except CapturePrimitiveError:
            raise
        except Exception as e:
            raise CapturePrimitiveError(f"Failed to capture viewport: {e}") from e
        finally:
            self._in_flight = False


class ControlProcess:
    """Responder side of the agent->control channel"""

    def __init__(self, primitive: CapturePrimitive):
        self.primitive = primitive
        self.responder = Responder("control")
        self.responder.register(Action.CAPTURE_VIEWPORT, self.handle_capture_viewport)

    async def handle_capture_viewport(self, payload: Dict[str, Any]) -> str:
        try:
            png = await self.primitive.capture()
        except CapturePrimitiveError as e:
            logger.error(f"Error in capture-viewport: {e}")
            raise
        logger.debug(f"Captured viewport ({len(png)} bytes)")
        return encode_data_url(png)
