"""
pagecap_logs - Markdown run logs for capture sessions

Usage:
    from pagecap_logs import RunLogger

    run_log = RunLogger(url="https://example.com", command_line="pagecap capture https://example.com")
    run_log.log_geometry(geometry)
    run_log.log_snapshot(snapshot, geometry)
    run_log.finalize(success=True, duration_ms=1834)
"""

from .run_logger import RunLogger, create_run_logger

__all__ = [
    'RunLogger',
    'create_run_logger',
]
