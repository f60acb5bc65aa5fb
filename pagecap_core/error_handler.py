"""
User-Friendly Error Handler.

Converts capture pipeline errors into messages with actionable suggestions
for the command line.
"""

from typing import Dict, Optional, Union
import logging

from .exceptions import PagecapError

logger = logging.getLogger(__name__)


# Error kinds (PagecapError.kind / CaptureOutcome.error_kind) -> user-friendly info
KIND_MAPPINGS = {
    "transport": {
        "message": "The page could not be reached to take the capture",
        "suggestion": "Reload the page and try again",
        "severity": "error",
        "can_retry": True,
    },
    "remote": {
        "message": "The page reported an error while capturing",
        "suggestion": "Check the technical details below",
        "severity": "error",
        "can_retry": True,
    },
    "timeout": {
        "message": "The page stopped responding during capture",
        "suggestion": "Increase --timeout or try again once the page has finished loading",
        "severity": "warning",
        "can_retry": True,
    },
    "primitive": {
        "message": "The browser refused to capture the visible area",
        "suggestion": "Wait a moment and try again; slow down with --repaint-delay if this repeats",
        "severity": "error",
        "can_retry": True,
    },
    "geometry": {
        "message": "The page size could not be determined",
        "suggestion": "Make sure the page has finished loading and has content",
        "severity": "error",
        "can_retry": True,
    },
    "decode": {
        "message": "A captured part of the page could not be read",
        "suggestion": "Try the capture again",
        "severity": "error",
        "can_retry": True,
    },
    "composite": {
        "message": "The captured parts could not be assembled",
        "suggestion": "Try the capture again",
        "severity": "error",
        "can_retry": True,
    },
    "cancelled": {
        "message": "The capture was cancelled",
        "suggestion": "Start a new capture when ready",
        "severity": "warning",
        "can_retry": True,
    },
    "session_active": {
        "message": "A full-page capture is already running on this page",
        "suggestion": "Wait for the running capture to finish",
        "severity": "warning",
        "can_retry": True,
    },
    "not_connected": {
        "message": "No connected account; the screenshot was not saved",
        "suggestion": "Set PAGECAP_CONNECTED_CREDENTIAL or use --output to write the file directly",
        "severity": "warning",
        "can_retry": False,
    },
}

# Message fragments -> user-friendly info, for errors raised outside pagecap
ERROR_MAPPINGS = {
    "receiving end does not exist": KIND_MAPPINGS["transport"],
    "no response to": KIND_MAPPINGS["timeout"],
    "timeout": KIND_MAPPINGS["timeout"],
    "quota": KIND_MAPPINGS["primitive"],
    "failed to capture viewport": KIND_MAPPINGS["primitive"],
    "page dimensions": KIND_MAPPINGS["geometry"],
    "cannot decode": KIND_MAPPINGS["decode"],
    "already in progress": KIND_MAPPINGS["session_active"],
    "cancelled": KIND_MAPPINGS["cancelled"],
    "target closed": {
        "message": "The browser was closed during the capture",
        "suggestion": "Run the capture again",
        "severity": "error",
        "can_retry": True,
    },
    "net::": {
        "message": "The page could not be loaded",
        "suggestion": "Check that the URL is correct and reachable",
        "severity": "error",
        "can_retry": True,
    },
    "executable doesn't exist": {
        "message": "The Playwright browser is not installed",
        "suggestion": "Run: playwright install chromium",
        "severity": "critical",
        "can_retry": False,
    },
    "permission denied": {
        "message": "No permission to write the screenshot",
        "suggestion": "Check permissions of the output directory",
        "severity": "error",
        "can_retry": False,
    },
}


def _error_kind(error: Union[Exception, str]) -> Optional[str]:
    if isinstance(error, PagecapError):
        return error.kind
    return None


def format_user_friendly_error(
    error: Union[Exception, str],
    kind: Optional[str] = None,
    technical_details: Optional[str] = None
) -> Dict:
    """
    Convert technical error to user-friendly message.

    Args:
        error: The exception (or terminal error string) that occurred
        kind: Error kind when known (e.g. CaptureOutcome.error_kind)
        technical_details: Additional technical information

    Returns:
        Dictionary with user-friendly error information:
        {
            "message": str,          # User-friendly message
            "suggestion": str,       # Actionable suggestion
            "technical": str,        # Technical details
            "severity": str,         # "critical", "error", "warning"
            "can_retry": bool        # Whether retry might help
        }
    """
    error_str = str(error)
    kind = kind or _error_kind(error)

    if kind in KIND_MAPPINGS:
        result = KIND_MAPPINGS[kind].copy()
        result["technical"] = technical_details or error_str
        return result

    for pattern, friendly_error in ERROR_MAPPINGS.items():
        if pattern in error_str.lower():
            result = friendly_error.copy()
            result["technical"] = technical_details or error_str
            logger.debug(f"Mapped error to user-friendly: {result['message']}")
            return result

    return {
        "message": "An unexpected error occurred during capture",
        "suggestion": "Check the logs or try again",
        "technical": technical_details or error_str,
        "severity": "error",
        "can_retry": True,
    }


def format_error_for_cli(
    error: Union[Exception, str],
    kind: Optional[str] = None,
    action: str = "capture full page"
) -> str:
    """
    Format error for terminal output.

    Args:
        error: The exception or terminal error string
        kind: Error kind when known
        action: What was being attempted, used in the first line

    Returns:
        Multi-line string: message, suggestion, technical details
    """
    friendly = format_user_friendly_error(error, kind)
    return "\n".join([
        f"Failed to {action}: {friendly['technical']}",
        f"  {friendly['message']}",
        f"  Hint: {friendly['suggestion']}",
    ])


def create_error_response(
    error: Union[Exception, str],
    kind: Optional[str] = None,
    include_stacktrace: bool = False
) -> Dict:
    """
    Create standardized error response for the CLI's JSON output.

    Args:
        error: The exception or terminal error string
        kind: Error kind when known
        include_stacktrace: Whether to include full stacktrace

    Returns:
        Standardized error response dictionary
    """
    import traceback

    friendly = format_user_friendly_error(error, kind)

    response = {
        "success": False,
        "error": {
            "message": friendly["message"],
            "suggestion": friendly["suggestion"],
            "severity": friendly["severity"],
            "can_retry": friendly["can_retry"],
            "kind": kind or _error_kind(error) or "unknown",
            "technical": friendly["technical"],
        }
    }

    if include_stacktrace:
        response["error"]["stacktrace"] = traceback.format_exc()

    return response
