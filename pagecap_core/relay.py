"""
Relay Protocol - tagged request/response channel between contexts

Every cross-context call (geometry queries, scroll commands, capture
requests) is one RelayMessage answered by exactly one RelayResponse.
Messages are JSON round-tripped so the page agent and the control
process never share Python objects.

Usage:
    from pagecap_core.relay import Action, RelayChannel, Responder

    control = Responder("control")
    control.register(Action.CAPTURE_VIEWPORT, capture_handler)

    channel = RelayChannel("agent->control", responder=control, timeout=30)
    data_url = await channel.request(Action.CAPTURE_VIEWPORT)
"""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .exceptions import (
    CaptureCancelledError,
    RelayRemoteError,
    RelayTimeoutError,
    RelayTransportError,
)

logger = logging.getLogger(__name__)

RECEIVER_MISSING = "Could not establish connection. Receiving end does not exist."


class Action(str, Enum):
    """Relay action tags"""
    CAPTURE_VIEWPORT = "capture-viewport"
    GET_PAGE_DIMENSIONS = "get-page-dimensions"
    GET_VIEWPORT_HEIGHT = "get-viewport-height"
    SCROLL_TO = "scroll-to"
    AWAIT_PAINT = "await-paint"
    FULL_PAGE_CAPTURE_REQUEST = "full-page-capture-request"


def _tag(action: Union[Action, str]) -> str:
    return action.value if isinstance(action, Action) else str(action)


@dataclass(frozen=True)
class RelayMessage:
    request_id: int
    action: str
    payload: Optional[Dict[str, Any]] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "RelayMessage":
        data = json.loads(raw)
        return cls(
            request_id=int(data["request_id"]),
            action=str(data["action"]),
            payload=data.get("payload"),
        )


@dataclass(frozen=True)
class RelayResponse:
    request_id: int
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "RelayResponse":
        data = json.loads(raw)
        return cls(
            request_id=int(data["request_id"]),
            result=data.get("result"),
            error=data.get("error"),
        )


class CancellationToken:
    """
    Cooperative cancellation shared by everything a capture session awaits.

    Once cancelled it stays cancelled; awaiting through ``run`` or ``sleep``
    raises CaptureCancelledError as soon as the token fires.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason = "Capture cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None):
        if reason:
            self.reason = reason
        self._event.set()

    def raise_if_cancelled(self):
        if self.cancelled:
            raise CaptureCancelledError(self.reason)

    async def run(self, awaitable: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """
        Await ``awaitable`` unless the token fires or ``timeout`` elapses first.

        Raises:
            CaptureCancelledError: token fired first
            asyncio.TimeoutError: deadline elapsed first
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CaptureCancelledError(self.reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()
        task.cancel()
        if self.cancelled:
            raise CaptureCancelledError(self.reason)
        raise asyncio.TimeoutError()

    async def sleep(self, delay: float):
        if delay > 0:
            await self.run(asyncio.sleep(delay))
        else:
            self.raise_if_cancelled()


Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class Responder:
    """
    Receiving end of a relay channel.

    Maps action tags to async handlers. ``dispatch`` answers every message
    exactly once: handler failures and unknown actions come back as
    ``{error}`` responses instead of propagating.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: Dict[str, Handler] = {}

    def register(self, action: Union[Action, str], handler: Handler):
        self._handlers[_tag(action)] = handler

    async def dispatch(self, raw: str) -> str:
        try:
            message = RelayMessage.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"[{self.name}] Malformed relay message: {e}")
            return RelayResponse(request_id=-1, error=f"Malformed relay message: {e}").to_json()

        handler = self._handlers.get(message.action)
        if handler is None:
            return RelayResponse(message.request_id, error=f"Unknown action: {message.action}").to_json()

        try:
            result = await handler(message.payload or {})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.name}] Error in {message.action}: {e}")
            return RelayResponse(message.request_id, error=str(e) or e.__class__.__name__).to_json()

        try:
            return RelayResponse(message.request_id, result=result).to_json()
        except TypeError as e:
            logger.error(f"[{self.name}] Unserializable result for {message.action}: {e}")
            return RelayResponse(message.request_id, error=f"Unserializable result: {e}").to_json()


_DEFAULT = object()


class RelayChannel:
    """
    Initiating end of a relay channel.

    One channel points at one responder (or none, when the receiving
    context is gone). Each request gets its own id; the response must
    echo it.
    """

    def __init__(
        self,
        name: str,
        responder: Optional[Responder] = None,
        timeout: Optional[float] = None,
    ):
        self.name = name
        self.timeout = timeout
        self._responder = responder
        self._ids = itertools.count(1)

    @property
    def connected(self) -> bool:
        return self._responder is not None

    def attach(self, responder: Responder):
        self._responder = responder

    def detach(self):
        self._responder = None

    async def request(
        self,
        action: Union[Action, str],
        payload: Optional[Dict[str, Any]] = None,
        *,
        timeout: Any = _DEFAULT,
        token: Optional[CancellationToken] = None,
    ) -> Any:
        """
        Send one request and wait for its response.

        Raises:
            RelayTransportError: no responder attached, or a response that
                does not belong to this request
            RelayRemoteError: responder answered with an error
            RelayTimeoutError: no answer within the deadline
            CaptureCancelledError: token fired while waiting
        """
        tag = _tag(action)
        responder = self._responder
        if responder is None:
            raise RelayTransportError(RECEIVER_MISSING)

        deadline = self.timeout if timeout is _DEFAULT else timeout
        message = RelayMessage(next(self._ids), tag, payload)
        logger.debug(f"[{self.name}] -> {tag} #{message.request_id}")

        call = responder.dispatch(message.to_json())
        try:
            if token is not None:
                raw = await token.run(call, timeout=deadline)
            elif deadline is not None:
                raw = await asyncio.wait_for(call, deadline)
            else:
                raw = await call
        except asyncio.TimeoutError:
            raise RelayTimeoutError(f"No response to '{tag}' within {deadline:.1f}s") from None

        response = RelayResponse.from_json(raw)
        if response.request_id != message.request_id:
            raise RelayTransportError(
                f"Response #{response.request_id} does not match request #{message.request_id}"
            )
        if not response.ok:
            raise RelayRemoteError(response.error)
        logger.debug(f"[{self.name}] <- {tag} #{message.request_id}")
        return response.result
