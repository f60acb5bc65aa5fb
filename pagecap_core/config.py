#!/usr/bin/env python3
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


@dataclass
class Config:
    """Application configuration"""
    # Capture loop timing (seconds)
    repaint_delay: float = float(os.getenv("PAGECAP_REPAINT_DELAY", "0.5"))
    scroll_settle_delay: float = float(os.getenv("PAGECAP_SCROLL_SETTLE_DELAY", "0.1"))
    wait_for_paint: bool = os.getenv("PAGECAP_WAIT_FOR_PAINT", "true").lower() in ["true", "1", "yes"]

    # Relay: per-call deadline, <= 0 disables it
    relay_timeout: float = float(os.getenv("PAGECAP_RELAY_TIMEOUT", "30"))

    # Geometry / compositing
    fallback_viewport_height: int = int(os.getenv("PAGECAP_FALLBACK_VIEWPORT_HEIGHT", "600"))
    capture_width: Optional[int] = _optional_int("PAGECAP_CAPTURE_WIDTH")

    # Capture primitive quota, <= 0 disables it
    max_captures_per_second: float = float(os.getenv("PAGECAP_MAX_CAPTURES_PER_SECOND", "2"))

    # Browser
    viewport_width: int = int(os.getenv("PAGECAP_VIEWPORT_WIDTH", "1280"))
    viewport_height: int = int(os.getenv("PAGECAP_VIEWPORT_HEIGHT", "800"))
    headless: bool = os.getenv("PAGECAP_HEADLESS", "true").lower() == "true"
    navigation_timeout_ms: int = int(os.getenv("PAGECAP_NAVIGATION_TIMEOUT_MS", "30000"))

    # Output / logs
    screenshot_dir: Path = Path(os.getenv("PAGECAP_SCREENSHOT_DIR", "./screenshots"))
    log_dir: Path = Path(os.getenv("PAGECAP_LOG_DIR", "./logs"))
    log_level: str = os.getenv("PAGECAP_LOG_LEVEL", "INFO").upper()

    # Identity collaborator: credential that must be connected before handoff
    connected_credential: Optional[str] = os.getenv("PAGECAP_CONNECTED_CREDENTIAL") or None

    @property
    def relay_deadline(self) -> Optional[float]:
        return self.relay_timeout if self.relay_timeout > 0 else None

    @property
    def capture_quota(self) -> Optional[float]:
        return self.max_captures_per_second if self.max_captures_per_second > 0 else None


config = Config()
