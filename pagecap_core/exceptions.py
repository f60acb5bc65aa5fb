"""
pagecap exceptions
"""


class PagecapError(Exception):
    """Base exception for pagecap"""
    kind = "unknown"


class RelayError(PagecapError):
    """Cross-context call did not produce a result"""
    kind = "relay"


class RelayTransportError(RelayError):
    """Receiving end of a relay channel is absent or unreachable"""
    kind = "transport"


class RelayRemoteError(RelayError):
    """Responder answered with an application-level error"""
    kind = "remote"


class RelayTimeoutError(RelayError):
    """Responder did not answer before the call deadline"""
    kind = "timeout"


class CapturePrimitiveError(PagecapError):
    """Visible-viewport capture refused or failed"""
    kind = "primitive"


class GeometryError(PagecapError):
    """Page dimensions could not be resolved"""
    kind = "geometry"


class DecodeError(PagecapError):
    """Snapshot image could not be decoded"""
    kind = "decode"


class CompositeError(PagecapError):
    """Snapshot sequence cannot be composited"""
    kind = "composite"


class CaptureCancelledError(PagecapError):
    """Capture session was cancelled by its owner"""
    kind = "cancelled"


class SessionActiveError(PagecapError):
    """A capture session is already running in this page context"""
    kind = "session_active"


class NotConnectedError(PagecapError):
    """No connected credential; captured image may not be handed off"""
    kind = "not_connected"
