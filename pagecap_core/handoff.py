"""
Handoff of finished captures to external collaborators.

The capture core never stores images. A finished image is handed to an
ImageSink only after the IdentityStore reports a connected credential.

Organizes saved screenshots as:
    screenshots/
    └── domain/
        └── run-TIMESTAMP/
            └── fullpage.png
"""
from pathlib import Path
from datetime import datetime, timedelta
from typing import Optional, Protocol
from urllib.parse import urlparse
import re
import shutil
import logging

from .exceptions import NotConnectedError

logger = logging.getLogger(__name__)


class IdentityStore(Protocol):
    def connected_credential(self) -> Optional[str]:
        ...


class ImageSink(Protocol):
    def store(self, image: bytes, name: str) -> str:
        ...


class StaticIdentityStore:
    """Identity lookup backed by a fixed value (e.g. from configuration)."""

    def __init__(self, credential: Optional[str] = None):
        self._credential = credential

    def connected_credential(self) -> Optional[str]:
        return self._credential


def site_name(url: str) -> str:
    """Filesystem-safe host name for a URL."""
    host = urlparse(url).netloc.lower() or url.lower()
    host = re.sub(r"^www\.", "", host)
    host = re.sub(r"[^a-z0-9.\-_]+", "_", host)
    return host or "site"


class DirectorySink:
    """Writes each image into its own run directory under ``base_dir``."""

    def __init__(self, base_dir: Path, domain: str, run_id: Optional[str] = None):
        self.base_dir = Path(base_dir)
        self.domain = domain
        self.run_id = run_id or datetime.now().strftime("%Y%m%d-%H%M%S")

    @property
    def run_dir(self) -> Path:
        return self.base_dir / self.domain / f"run-{self.run_id}"

    def store(self, image: bytes, name: str) -> str:
        run_dir = self.run_dir
        run_dir.mkdir(parents=True, exist_ok=True)
        path = run_dir / f"{name}.png"
        path.write_bytes(image)
        logger.debug(f"Screenshot saved: {path}")
        return str(path)


def hand_off(image: bytes, name: str, identity: IdentityStore, sink: ImageSink) -> str:
    """
    Pass a finished capture to the sink if a credential is connected.

    Returns:
        Location reported by the sink

    Raises:
        NotConnectedError: no connected credential
    """
    if not identity.connected_credential():
        raise NotConnectedError("Please connect an account to save screenshots")
    return sink.store(image, name)


def cleanup_old_screenshots(base_dir: Path, max_age_days: int = 7) -> int:
    """
    Remove run directories older than max_age_days.

    Returns:
        Number of directories removed
    """
    base = Path(base_dir)
    if not base.exists():
        return 0

    cutoff = datetime.now() - timedelta(days=max_age_days)
    removed_count = 0

    for domain_dir in base.iterdir():
        if not domain_dir.is_dir():
            continue

        for run_dir in domain_dir.glob("run-*"):
            if not run_dir.is_dir():
                continue

            mtime = datetime.fromtimestamp(run_dir.stat().st_mtime)
            if mtime < cutoff:
                try:
                    shutil.rmtree(run_dir)
                    removed_count += 1
                    logger.info(f"Removed old screenshot dir: {run_dir}")
                except OSError as e:
                    logger.warning(f"Failed to remove {run_dir}: {e}")

    return removed_count
