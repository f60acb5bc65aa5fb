"""
Shared fakes for capture pipeline tests.

FakePage stands in for a Playwright page: it renders a tall document image
and answers the page agent's scripts and the viewport screenshot from it,
clamping scroll positions the way a browser does.
"""

import io

import pytest
from PIL import Image, ImageDraw

from pagecap_core.page_agent import (
    JS_AWAIT_PAINT,
    JS_PAGE_DIMENSIONS,
    JS_SCROLL_TO,
    JS_VIEWPORT_HEIGHT,
)


def make_document(width: int, height: int, band: int = 50) -> Image.Image:
    """Horizontal colour bands so every row range is distinguishable."""
    image = Image.new("RGB", (width, height))
    draw = ImageDraw.Draw(image)
    for i, top in enumerate(range(0, height, band)):
        colour = ((i * 37) % 256, (i * 91) % 256, (i * 53 + 40) % 256)
        draw.rectangle((0, top, width - 1, min(top + band, height) - 1), fill=colour)
    return image


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def open_png(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class FakePage:
    def __init__(self, document: Image.Image, viewport_height: int):
        self.document = document
        self.viewport_height = viewport_height
        self.scroll_y = 0
        self.scroll_calls = []
        self.screenshot_calls = 0

    @property
    def max_scroll(self) -> int:
        return max(0, self.document.height - self.viewport_height)

    async def evaluate(self, script, arg=None):
        if script is JS_PAGE_DIMENSIONS:
            return {"width": self.document.width, "height": self.document.height}
        if script is JS_VIEWPORT_HEIGHT:
            return {"height": self.viewport_height}
        if script is JS_SCROLL_TO:
            x, y = arg
            self.scroll_calls.append(y)
            self.scroll_y = max(0, min(y, self.max_scroll))
            return {"x": 0, "y": self.scroll_y}
        if script is JS_AWAIT_PAINT:
            return {"frames": 2}
        raise AssertionError(f"Unexpected script: {script!r}")

    async def screenshot(self, type="png", full_page=False):
        assert not full_page
        self.screenshot_calls += 1
        visible = self.document.crop(
            (0, self.scroll_y, self.document.width, self.scroll_y + self.viewport_height)
        )
        return png_bytes(visible)


@pytest.fixture
def document_factory():
    return make_document


@pytest.fixture
def fake_page_factory():
    def factory(width: int = 320, height: int = 1600, viewport_height: int = 600) -> FakePage:
        return FakePage(make_document(width, height), viewport_height)
    return factory
