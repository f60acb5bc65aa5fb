#!/usr/bin/env python3
import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def _ensure_playwright_browsers():
    """Check if Playwright browsers are installed, auto-install if missing."""
    cache_dir = Path.home() / ".cache" / "ms-playwright"
    chromium_dirs = list(cache_dir.glob("chromium*")) if cache_dir.exists() else []

    for d in chromium_dirs:
        if (d / "chrome-linux" / "chrome").exists() or \
           (d / "chrome-linux" / "headless_shell").exists():
            return

    logger.info("Playwright browsers not found. Installing chromium...")
    try:
        result = subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            capture_output=True,
            text=True,
            timeout=300
        )
        if result.returncode != 0:
            logger.warning(f"Playwright install warning: {result.stderr[:200]}")
    except subprocess.TimeoutExpired:
        logger.warning("Playwright install timed out, continuing anyway...")
    except OSError as e:
        logger.warning(f"Failed to auto-install Playwright: {e}")


@asynccontextmanager
async def open_page(
    url: str,
    config,
    viewport_width: Optional[int] = None,
    viewport_height: Optional[int] = None,
):
    """
    Launch Chromium, open ``url`` and yield the loaded page.

    The page uses ``device_scale_factor=1`` so one CSS pixel maps to one
    raster pixel in every viewport capture.
    """
    from playwright.async_api import async_playwright

    _ensure_playwright_browsers()

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=bool(config.headless),
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        try:
            context = await browser.new_context(
                viewport={
                    "width": viewport_width or config.viewport_width,
                    "height": viewport_height or config.viewport_height,
                },
                device_scale_factor=1,
            )
            page = await context.new_page()
            logger.info(f"Navigating to {url}")
            await page.goto(url, timeout=config.navigation_timeout_ms, wait_until="networkidle")
            yield page
        finally:
            await browser.close()


def ensure_scheme(url: str) -> str:
    if "://" not in url:
        return "https://" + url
    return url
