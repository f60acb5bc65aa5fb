"""
Capture Loop - scroll, settle, capture, accumulate, composite

One CaptureController exists per page context. It runs at most one
session at a time: a request that arrives while a session is active gets a
SESSION_ACTIVE outcome and the running session carries on untouched.

Captures are strictly sequential. The primitive captures whatever is
visible, so the next scroll is never issued before the previous capture's
response has arrived.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .compositor import Compositor, Snapshot
from .exceptions import (
    PagecapError,
    RelayError,
    RelayTransportError,
    SessionActiveError,
)
from .geometry import GeometryResolver, PageGeometry
from .relay import Action, CancellationToken, RelayChannel

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    SCROLLING = "scrolling"
    AWAITING_REPAINT = "awaiting_repaint"
    CAPTURING = "capturing"
    ACCUMULATING = "accumulating"
    COMPOSITING = "compositing"
    COMPLETE = "complete"
    FAILED = "failed"


_RESTING_STATES = (CaptureState.IDLE, CaptureState.COMPLETE, CaptureState.FAILED)


class OutcomeKind(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    SESSION_ACTIVE = "session_active"


@dataclass
class CaptureOutcome:
    """Terminal result of one full-page capture request"""
    kind: OutcomeKind
    image: Optional[bytes] = None
    geometry: Optional[PageGeometry] = None
    snapshot_count: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.COMPLETE

    @classmethod
    def complete(cls, image: bytes, geometry: PageGeometry, snapshot_count: int) -> "CaptureOutcome":
        return cls(OutcomeKind.COMPLETE, image=image, geometry=geometry, snapshot_count=snapshot_count)

    @classmethod
    def failed(cls, error: Exception, geometry: Optional[PageGeometry] = None) -> "CaptureOutcome":
        kind = error.kind if isinstance(error, PagecapError) else "unknown"
        return cls(OutcomeKind.FAILED, geometry=geometry, error=str(error) or error.__class__.__name__, error_kind=kind)

    @classmethod
    def session_active(cls) -> "CaptureOutcome":
        error = SessionActiveError("A full-page capture is already in progress")
        return cls(OutcomeKind.SESSION_ACTIVE, error=str(error), error_kind=error.kind)


@dataclass
class CaptureSession:
    """Ephemeral state of one running capture"""
    token: CancellationToken
    geometry: Optional[PageGeometry] = None
    offset: int = 0
    snapshots: List[Snapshot] = field(default_factory=list)


class CaptureController:
    """
    Drives full-page capture sessions for one page context.

    Args:
        page_channel: relay to the page agent (geometry, scrolling, paint)
        control_channel: relay to the control process (capture-viewport)
        compositor: assembles the snapshots; defaults to true page width
        repaint_delay: fixed settle time after each scroll, seconds
        scroll_settle_delay: wait used when a scroll command cannot be delivered
        wait_for_paint: ask the page agent for a paint-settled signal first
        relay_timeout: per-call deadline for every relay request
        fallback_viewport_height: viewport height used when the query fails
        min_capture_interval: minimum seconds between capture-viewport requests,
            matching the control process quota (0 disables pacing)
        on_snapshot: optional callback invoked after each accumulated snapshot
    """

    def __init__(
        self,
        page_channel: RelayChannel,
        control_channel: RelayChannel,
        compositor: Optional[Compositor] = None,
        *,
        repaint_delay: float = 0.5,
        scroll_settle_delay: float = 0.1,
        wait_for_paint: bool = True,
        relay_timeout: Optional[float] = 30.0,
        fallback_viewport_height: int = 600,
        min_capture_interval: float = 0.0,
        on_snapshot: Optional[Callable[[Snapshot, PageGeometry], None]] = None,
    ):
        self.page_channel = page_channel
        self.control_channel = control_channel
        self.compositor = compositor or Compositor()
        self.repaint_delay = repaint_delay
        self.scroll_settle_delay = scroll_settle_delay
        self.wait_for_paint = wait_for_paint
        self.relay_timeout = relay_timeout
        self.resolver = GeometryResolver(page_channel, fallback_viewport_height)
        self.on_snapshot = on_snapshot
        self.min_capture_interval = min_capture_interval
        self._last_capture: Optional[float] = None
        self._state = CaptureState.IDLE
        self._session: Optional[CaptureSession] = None

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state not in _RESTING_STATES

    def cancel(self, reason: str = "Capture cancelled") -> bool:
        """Cancel the running session, if any. Returns True if one was running."""
        if self._session is None:
            return False
        logger.info(f"Cancelling capture session: {reason}")
        self._session.token.cancel(reason)
        return True

    def _enter(self, state: CaptureState):
        logger.debug(f"Capture state: {self._state.value} -> {state.value}")
        self._state = state

    async def capture_full_page(self) -> CaptureOutcome:
        """
        Run one full-page capture session.

        Never raises for capture failures: the outcome is COMPLETE with the
        encoded image, FAILED with an error description, or SESSION_ACTIVE
        when another session already owns this page context.
        """
        if self.active:
            logger.info("Full-page capture requested while a session is active; rejecting")
            return CaptureOutcome.session_active()

        session = CaptureSession(token=CancellationToken())
        self._session = session
        self._enter(CaptureState.RESOLVING)
        try:
            image = await self._run(session)
        except asyncio.CancelledError:
            self._enter(CaptureState.FAILED)
            raise
        except Exception as e:
            self._enter(CaptureState.FAILED)
            logger.error(f"Error in capture_full_page: {e}")
            return CaptureOutcome.failed(e, session.geometry)
        finally:
            self._session = None

        self._enter(CaptureState.COMPLETE)
        return CaptureOutcome.complete(image, session.geometry, len(session.snapshots))

    async def _run(self, session: CaptureSession) -> bytes:
        token = session.token
        geometry = await self.resolver.resolve(token)
        session.geometry = geometry

        while session.offset < geometry.total_height:
            self._enter(CaptureState.SCROLLING)
            actual_y = await self._scroll_to(session.offset, token)

            self._enter(CaptureState.AWAITING_REPAINT)
            await self._await_repaint(token)

            self._enter(CaptureState.CAPTURING)
            await self._pace_capture(token)
            image_data = await self.control_channel.request(
                Action.CAPTURE_VIEWPORT, timeout=self.relay_timeout, token=token
            )
            self._last_capture = asyncio.get_running_loop().time()

            self._enter(CaptureState.ACCUMULATING)
            source_top = session.offset - actual_y if actual_y is not None else 0
            snapshot = Snapshot(
                image_data=image_data,
                vertical_offset=session.offset,
                source_top=max(0, source_top),
            )
            session.snapshots.append(snapshot)
            logger.info(
                f"Captured snapshot {len(session.snapshots)}/{geometry.step_count} at y={session.offset}"
            )
            if self.on_snapshot:
                self.on_snapshot(snapshot, geometry)
            session.offset += geometry.viewport_height

        self._enter(CaptureState.COMPOSITING)
        token.raise_if_cancelled()
        return await self.compositor.composite(session.snapshots, geometry)

    async def _scroll_to(self, y: int, token: CancellationToken) -> Optional[int]:
        """Scroll the page to (0, y); returns the actual scroll Y when reported."""
        try:
            ack = await self.page_channel.request(
                Action.SCROLL_TO, {"x": 0, "y": y}, timeout=self.relay_timeout, token=token
            )
        except RelayTransportError as e:
            logger.warning(f"Error in scroll-to y={y}: {e}; proceeding after timed wait")
            await token.sleep(self.scroll_settle_delay)
            return None

        if isinstance(ack, dict) and isinstance(ack.get("y"), (int, float)):
            actual = int(round(ack["y"]))
            if actual != y:
                logger.debug(f"Scroll to y={y} landed at y={actual}")
            return actual
        return None

    async def _pace_capture(self, token: CancellationToken):
        """Hold the next capture until the quota window allows it."""
        if not self.min_capture_interval or self._last_capture is None:
            return
        loop = asyncio.get_running_loop()
        ready_at = self._last_capture + self.min_capture_interval
        # Timers may fire up to one clock tick early
        while loop.time() < ready_at:
            await token.sleep(ready_at - loop.time())

    async def _await_repaint(self, token: CancellationToken):
        if self.wait_for_paint:
            try:
                await self.page_channel.request(
                    Action.AWAIT_PAINT, timeout=self.relay_timeout, token=token
                )
            except RelayError as e:
                logger.debug(f"Paint signal unavailable ({e}); using fixed delay")
        await token.sleep(self.repaint_delay)
