"""
Compositor - stitches ordered viewport snapshots into one full-page image

Each snapshot is decoded in a worker thread and awaited before the next
one is drawn, so draw order follows vertical offset no matter how long
any single decode takes.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from PIL import Image, UnidentifiedImageError

from .exceptions import CompositeError, DecodeError
from .geometry import PageGeometry
from .images import decode_data_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """One visible-viewport capture and where it belongs on the page"""
    image_data: str
    vertical_offset: int
    # First raster row holding content for vertical_offset (non-zero when
    # the browser clamped the last scroll short of the requested offset)
    source_top: int = 0


def decode_image(data_url: str) -> Image.Image:
    """Decode a data URL into a fully loaded Pillow image."""
    raw = decode_data_url(data_url)
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Cannot decode snapshot image: {e}") from e
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")
    return image


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class Compositor:
    """Assembles snapshots onto a surface of ``width x total_height``."""

    def __init__(self, width: Optional[int] = None):
        # None: use the page's true total width
        self.width = width

    def surface_width(self, geometry: PageGeometry, width: Optional[int] = None) -> int:
        return width or self.width or geometry.total_width

    def _check_order(self, snapshots: Sequence[Snapshot], geometry: PageGeometry):
        if not snapshots:
            raise CompositeError("No snapshots to composite")
        previous = -1
        for snapshot in snapshots:
            if snapshot.vertical_offset <= previous:
                raise CompositeError(
                    f"Snapshot offsets must strictly increase "
                    f"({snapshot.vertical_offset} after {previous})"
                )
            if snapshot.vertical_offset >= geometry.total_height:
                raise CompositeError(
                    f"Snapshot offset {snapshot.vertical_offset} is outside the page "
                    f"(height {geometry.total_height})"
                )
            previous = snapshot.vertical_offset

    async def render(
        self,
        snapshots: Sequence[Snapshot],
        geometry: PageGeometry,
        width: Optional[int] = None,
    ) -> Image.Image:
        """
        Draw every snapshot at (0, vertical_offset) on one surface.

        The source height of each draw is clipped to
        min(viewport_height, total_height - vertical_offset) so the last
        snapshot does not spill past the page boundary.

        Raises:
            CompositeError: empty or out-of-order snapshot sequence
            DecodeError: a snapshot image cannot be decoded
        """
        self._check_order(snapshots, geometry)
        surface_width = self.surface_width(geometry, width)
        surface: Optional[Image.Image] = None

        for index, snapshot in enumerate(snapshots):
            image = await asyncio.to_thread(decode_image, snapshot.image_data)
            if surface is None:
                surface = Image.new(image.mode, (surface_width, geometry.total_height))
            elif image.mode != surface.mode:
                image = image.convert(surface.mode)

            draw_height = min(geometry.viewport_height, geometry.total_height - snapshot.vertical_offset)
            top = max(0, snapshot.source_top)
            region = image.crop((0, top, min(image.width, surface_width), top + draw_height))
            surface.paste(region, (0, snapshot.vertical_offset))
            logger.debug(
                f"Drew snapshot {index + 1}/{len(snapshots)} at y={snapshot.vertical_offset} "
                f"(height {draw_height})"
            )

        return surface

    async def composite(
        self,
        snapshots: Sequence[Snapshot],
        geometry: PageGeometry,
        width: Optional[int] = None,
    ) -> bytes:
        """Render the snapshots and encode the surface as PNG bytes."""
        surface = await self.render(snapshots, geometry, width)
        png = await asyncio.to_thread(encode_png, surface)
        logger.info(f"Composited {len(snapshots)} snapshots into {surface.width}x{surface.height} image")
        return png
