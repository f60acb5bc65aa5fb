"""
Wiring of the capture contexts for one browser page.

    caller ──full-page-capture-request──▶ PageAgent ──capture-viewport──▶ ControlProcess
                                            │  ▲
                                            └──┘ geometry / scroll-to / await-paint
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .config import Config, config as default_config
from .compositor import Compositor
from .control import CapturePrimitive, ControlProcess
from .images import decode_data_url
from .page_agent import PageAgent
from .relay import Action, RelayChannel

logger = logging.getLogger(__name__)


@dataclass
class CapturePipeline:
    control: ControlProcess
    agent: PageAgent
    # caller -> page agent
    agent_channel: RelayChannel
    # caller -> control process, for single-viewport captures
    control_channel: RelayChannel

    async def capture_full_page(self) -> bytes:
        """
        Request a full-page capture the way the enclosing UI does.

        Returns:
            PNG bytes of the composited page

        Raises:
            RelayError: the page agent answered with a terminal error
                (RelayRemoteError carries the error string verbatim)
        """
        # No deadline here: each relay call inside the session has its own.
        data_url = await self.agent_channel.request(Action.FULL_PAGE_CAPTURE_REQUEST, timeout=None)
        return decode_data_url(data_url)

    async def capture_viewport(self) -> bytes:
        data_url = await self.control_channel.request(Action.CAPTURE_VIEWPORT)
        return decode_data_url(data_url)


def build_pipeline(
    page,
    cfg: Optional[Config] = None,
    *,
    capture_width: Optional[int] = None,
    repaint_delay: Optional[float] = None,
    relay_timeout: Optional[float] = None,
    on_snapshot: Optional[Callable] = None,
) -> CapturePipeline:
    """Create the control process and page agent for ``page`` and connect them."""
    cfg = cfg or default_config
    timeout = relay_timeout if relay_timeout is not None else cfg.relay_deadline
    quota = cfg.capture_quota

    control = ControlProcess(CapturePrimitive(page, max_per_second=quota))
    agent_to_control = RelayChannel("agent->control", responder=control.responder, timeout=timeout)
    agent = PageAgent(
        page,
        agent_to_control,
        compositor=Compositor(width=capture_width or cfg.capture_width),
        repaint_delay=cfg.repaint_delay if repaint_delay is None else repaint_delay,
        scroll_settle_delay=cfg.scroll_settle_delay,
        wait_for_paint=cfg.wait_for_paint,
        relay_timeout=timeout,
        fallback_viewport_height=cfg.fallback_viewport_height,
        min_capture_interval=1.0 / quota if quota else 0.0,
        on_snapshot=on_snapshot,
    )
    logger.debug(f"Capture pipeline ready (relay timeout {timeout})")
    return CapturePipeline(
        control=control,
        agent=agent,
        agent_channel=RelayChannel("ui->agent", responder=agent.responder, timeout=timeout),
        control_channel=RelayChannel("ui->control", responder=control.responder, timeout=timeout),
    )
