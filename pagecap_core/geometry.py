"""
Geometry Resolver - page extents and viewport height from the page agent
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .exceptions import GeometryError, RelayError
from .relay import Action, CancellationToken, RelayChannel

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT_HEIGHT = 600


@dataclass(frozen=True)
class PageGeometry:
    """Layout metrics read once per capture session"""
    total_width: int
    total_height: int
    viewport_height: int

    @property
    def step_count(self) -> int:
        """Number of viewport-sized steps needed to cover the page"""
        return -(-self.total_height // self.viewport_height)

    def offsets(self) -> list:
        return list(range(0, self.total_height, self.viewport_height))


def _as_int(value) -> Optional[int]:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


class GeometryResolver:
    """
    Resolves PageGeometry through the relay.

    Page dimensions are mandatory: any failure aborts the session.
    The viewport height fails soft to ``fallback_viewport_height``.
    """

    def __init__(
        self,
        channel: RelayChannel,
        fallback_viewport_height: int = DEFAULT_VIEWPORT_HEIGHT,
    ):
        self.channel = channel
        self.fallback_viewport_height = fallback_viewport_height

    async def resolve(self, token: Optional[CancellationToken] = None) -> PageGeometry:
        width, height = await self.page_dimensions(token)
        viewport_height = await self.viewport_height(token)
        geometry = PageGeometry(width, height, viewport_height)
        logger.info(
            f"Page geometry: {width}x{height}, viewport height {viewport_height} "
            f"({geometry.step_count} steps)"
        )
        return geometry

    async def page_dimensions(self, token: Optional[CancellationToken] = None) -> tuple:
        try:
            response = await self.channel.request(Action.GET_PAGE_DIMENSIONS, token=token)
        except RelayError as e:
            logger.error(f"Error in get-page-dimensions: {e}")
            raise GeometryError(f"Failed to get page dimensions: {e}") from e

        if not isinstance(response, dict):
            raise GeometryError("Failed to get page dimensions: empty response")
        width = _as_int(response.get("width"))
        height = _as_int(response.get("height"))
        if not width or not height or width <= 0 or height <= 0:
            raise GeometryError(f"Invalid page dimensions: {response}")
        return width, height

    async def viewport_height(self, token: Optional[CancellationToken] = None) -> int:
        try:
            response = await self.channel.request(Action.GET_VIEWPORT_HEIGHT, token=token)
        except RelayError as e:
            logger.warning(
                f"Error in get-viewport-height: {e}; using fallback {self.fallback_viewport_height}"
            )
            return self.fallback_viewport_height

        height = _as_int(response.get("height")) if isinstance(response, dict) else None
        if not height or height <= 0:
            logger.warning(
                f"Unusable viewport height {response!r}; using fallback {self.fallback_viewport_height}"
            )
            return self.fallback_viewport_height
        return height
