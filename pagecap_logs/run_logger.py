"""
Run Logger - Markdown log of one capture run

Records the resolved page geometry, one table row per snapshot, the saved
image and the terminal outcome. The navigation block at the top is
rendered from the section headings when the run is finalized.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional


class RunLogger:
    """
    Markdown run logger for capture diagnostics.

    Usage:
        run_log = RunLogger(url="https://example.com/long-article")
        run_log.log_geometry(geometry)
        for snapshot in snapshots:
            run_log.log_snapshot(snapshot, geometry)
        run_log.log_image("screenshots/example.com/run-1/fullpage.png", "Full page")
        run_log.finalize(success=True, duration_ms=2100)
    """

    TOC_PLACEHOLDER = "<!-- TOC_PLACEHOLDER -->"

    def __init__(
        self,
        url: Optional[str],
        command_line: Optional[str] = None,
        log_dir: str = "./logs",
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or datetime.now().strftime('%Y%m%d-%H%M%S')
        self.dir = Path(log_dir)
        self.dir.mkdir(parents=True, exist_ok=True)
        self.path = self.dir / f'run-{self.session_id}.md'
        self._toc: List[str] = []
        self._snapshot_rows = 0

        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(f"# pagecap Run Log ({self.session_id})\n\n")
            f.write("## Navigation\n\n")
            f.write(self.TOC_PLACEHOLDER + "\n\n")
            if command_line:
                f.write(f"```bash\n{command_line}\n```\n\n")
            if url:
                f.write(f"- **URL**: {url}\n\n")

    def _write(self, text: str):
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(text)

    def log_heading(self, text: str):
        self._write("\n---\n\n")
        self._write(f"## {text}\n\n")
        self._toc.append(text)

    def log_kv(self, key: str, value):
        self._write(f"- {key}: {value}\n")

    def log_image(self, image_path: str, alt: str = ""):
        """Embed an image using a path relative to the log directory."""
        img = Path(image_path)
        try:
            rel = os.path.relpath(img.resolve(), start=self.dir.resolve())
        except ValueError:
            # Different drive on Windows
            rel = str(img)
        self._write(f"![{alt or img.name}]({rel})\n\n")

    def log_geometry(self, geometry):
        self.log_heading("Geometry")
        self.log_kv("Total width", geometry.total_width)
        self.log_kv("Total height", geometry.total_height)
        self.log_kv("Viewport height", geometry.viewport_height)
        self.log_kv("Steps", geometry.step_count)
        self._write("\n")

    def log_snapshot(self, snapshot, geometry):
        """Append one snapshot row, opening the table on first use."""
        if self._snapshot_rows == 0:
            self.log_heading("Snapshots")
            self._write("| # | Offset | Drawn height | Source top |\n")
            self._write("|---|--------|--------------|------------|\n")
        self._snapshot_rows += 1
        drawn = min(geometry.viewport_height, geometry.total_height - snapshot.vertical_offset)
        self._write(
            f"| {self._snapshot_rows} | {snapshot.vertical_offset} | {drawn} | {snapshot.source_top} |\n"
        )

    def finalize(self, success: bool, duration_ms: int = 0, error: Optional[str] = None):
        """Write the summary section and render the navigation block."""
        if self._snapshot_rows:
            self._write("\n")
        self.log_heading("Summary")
        status = "SUCCESS" if success else "FAILED"
        self._write(f"**Status:** {status}\n")
        self._write(f"**Duration:** {duration_ms}ms\n")
        if error:
            self._write(f"\n**Error:** {error}\n")
        self._write("\n")
        self._render_toc()

    def _slugify(self, text: str) -> str:
        s = text.strip().lower()
        s = re.sub(r"[^a-z0-9\s-]", "", s)
        s = re.sub(r"\s+", "-", s)
        return s

    def _render_toc(self):
        content = self.path.read_text(encoding='utf-8')
        items = [f"- [{title}](#{self._slugify(title)})" for title in self._toc]
        content = content.replace(self.TOC_PLACEHOLDER, "\n".join(items) or "(no sections)", 1)
        self.path.write_text(content, encoding='utf-8')

    @property
    def log_path(self) -> str:
        return str(self.path)


def create_run_logger(
    url: Optional[str] = None,
    command_line: Optional[str] = None,
    log_dir: str = "./logs"
) -> RunLogger:
    """Create a new run logger instance"""
    return RunLogger(url=url, command_line=command_line, log_dir=log_dir)
