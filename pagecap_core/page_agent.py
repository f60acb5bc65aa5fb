"""
Page agent - the context embedded in the target page

Answers layout and scroll queries by evaluating JavaScript in the live page,
and serves full-page-capture-request by driving a CaptureController whose
snapshots come from the control process.
"""

import logging
from typing import Any, Dict, Optional

from .capture_loop import CaptureController, OutcomeKind
from .exceptions import PagecapError
from .images import encode_data_url
from .relay import Action, RelayChannel, Responder

logger = logging.getLogger(__name__)


JS_PAGE_DIMENSIONS = r"""
() => {
  const doc = document.documentElement;
  const body = document.body || doc;
  return {
    width: Math.max(doc.scrollWidth, body.scrollWidth),
    height: Math.max(doc.scrollHeight, body.scrollHeight)
  };
}
"""

JS_VIEWPORT_HEIGHT = r"""
() => ({ height: window.innerHeight })
"""

JS_SCROLL_TO = r"""
([x, y]) => {
  window.scrollTo(x, y);
  return { x: window.scrollX, y: window.scrollY };
}
"""

# Resolves after two animation frames: the frame that applies the scroll
# and the one after it has been painted.
JS_AWAIT_PAINT = r"""
() => new Promise(resolve => {
  requestAnimationFrame(() => requestAnimationFrame(() => resolve({ frames: 2 })));
})
"""


class PageAgent:
    """
    Responder for the page-side relay actions.

    Args:
        page: Playwright page
        control_channel: relay to the control process
        controller_options: forwarded to CaptureController
    """

    def __init__(self, page, control_channel: RelayChannel, **controller_options):
        self.page = page
        self.control_channel = control_channel
        # The agent talks to its own handlers through a local channel so the
        # capture loop sees every geometry/scroll call as a relay round trip.
        self.responder = Responder("page-agent")
        self.local_channel = RelayChannel(
            "agent->agent",
            responder=self.responder,
            timeout=controller_options.get("relay_timeout"),
        )
        self.controller = CaptureController(self.local_channel, control_channel, **controller_options)

        self.responder.register(Action.GET_PAGE_DIMENSIONS, self.handle_page_dimensions)
        self.responder.register(Action.GET_VIEWPORT_HEIGHT, self.handle_viewport_height)
        self.responder.register(Action.SCROLL_TO, self.handle_scroll_to)
        self.responder.register(Action.AWAIT_PAINT, self.handle_await_paint)
        self.responder.register(Action.FULL_PAGE_CAPTURE_REQUEST, self.handle_full_page_capture)

    async def handle_page_dimensions(self, payload: Dict[str, Any]) -> Dict[str, int]:
        return await self.page.evaluate(JS_PAGE_DIMENSIONS)

    async def handle_viewport_height(self, payload: Dict[str, Any]) -> Dict[str, int]:
        return await self.page.evaluate(JS_VIEWPORT_HEIGHT)

    async def handle_scroll_to(self, payload: Dict[str, Any]) -> Dict[str, float]:
        x = int(payload.get("x", 0))
        y = int(payload.get("y", 0))
        logger.debug(f"Scrolling to y: {y}")
        return await self.page.evaluate(JS_SCROLL_TO, [x, y])

    async def handle_await_paint(self, payload: Dict[str, Any]) -> Dict[str, int]:
        return await self.page.evaluate(JS_AWAIT_PAINT)

    async def handle_full_page_capture(self, payload: Dict[str, Any]) -> str:
        outcome = await self.controller.capture_full_page()
        if outcome.kind != OutcomeKind.COMPLETE:
            raise PagecapError(outcome.error or "Unknown error")
        logger.info("Full page capture completed")
        return encode_data_url(outcome.image)

    def cancel(self, reason: Optional[str] = None) -> bool:
        return self.controller.cancel(reason or "Capture cancelled")
