"""
pagecap_core package: full-page capture by scroll, capture and stitch

Components:
    geometry     - page extents and viewport height from the page agent
    control      - control process owning the viewport capture primitive
    relay        - tagged request/response channel between contexts
    capture_loop - scroll/settle/capture state machine
    compositor   - stitches ordered snapshots into one image

Usage:
    from pagecap_core import build_pipeline

    async with open_page("https://example.com", config) as page:
        png = await build_pipeline(page).capture_full_page()
"""
from .config import Config, config
from .browser_setup import open_page
from .capture_loop import CaptureController, CaptureOutcome, CaptureState, OutcomeKind
from .compositor import Compositor, Snapshot
from .control import CapturePrimitive, ControlProcess
from .geometry import GeometryResolver, PageGeometry
from .page_agent import PageAgent
from .pipeline import CapturePipeline, build_pipeline
from .relay import Action, CancellationToken, RelayChannel, Responder

__all__ = [
    # Core
    "Config",
    "config",
    "open_page",
    "build_pipeline",
    "CapturePipeline",
    # Contexts
    "ControlProcess",
    "CapturePrimitive",
    "PageAgent",
    # Relay
    "Action",
    "RelayChannel",
    "Responder",
    "CancellationToken",
    # Capture
    "CaptureController",
    "CaptureOutcome",
    "CaptureState",
    "OutcomeKind",
    "GeometryResolver",
    "PageGeometry",
    "Compositor",
    "Snapshot",
]
