"""Tests for the relay protocol."""

import asyncio
import json

import pytest

from pagecap_core.exceptions import (
    CaptureCancelledError,
    RelayRemoteError,
    RelayTimeoutError,
    RelayTransportError,
)
from pagecap_core.relay import (
    Action,
    CancellationToken,
    RelayChannel,
    RelayMessage,
    RelayResponse,
    Responder,
)


def make_responder():
    responder = Responder("test")

    async def echo(payload):
        return {"echo": payload}

    async def boom(payload):
        raise RuntimeError("permission denied")

    async def slow(payload):
        await asyncio.sleep(5)
        return "late"

    responder.register(Action.SCROLL_TO, echo)
    responder.register(Action.CAPTURE_VIEWPORT, boom)
    responder.register(Action.AWAIT_PAINT, slow)
    return responder


class TestMessages:
    """Wire format of relay messages."""

    def test_message_json_roundtrip(self):
        message = RelayMessage(7, Action.SCROLL_TO.value, {"x": 0, "y": 600})
        assert RelayMessage.from_json(message.to_json()) == message

    def test_response_carries_result_or_error(self):
        assert RelayResponse(1, result="ok").ok
        failed = RelayResponse.from_json(RelayResponse(1, error="nope").to_json())
        assert not failed.ok
        assert failed.error == "nope"


class TestResponder:
    """Responder always answers exactly once."""

    @pytest.mark.asyncio
    async def test_dispatch_success(self):
        responder = make_responder()
        raw = await responder.dispatch(RelayMessage(1, "scroll-to", {"y": 5}).to_json())
        response = RelayResponse.from_json(raw)
        assert response.request_id == 1
        assert response.result == {"echo": {"y": 5}}

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_response(self):
        responder = make_responder()
        raw = await responder.dispatch(RelayMessage(2, "capture-viewport").to_json())
        response = RelayResponse.from_json(raw)
        assert response.request_id == 2
        assert response.error == "permission denied"

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        responder = make_responder()
        raw = await responder.dispatch(RelayMessage(3, "get-page-dimensions").to_json())
        assert "Unknown action" in RelayResponse.from_json(raw).error

    @pytest.mark.asyncio
    async def test_malformed_message(self):
        responder = make_responder()
        raw = await responder.dispatch("not json")
        response = RelayResponse.from_json(raw)
        assert response.request_id == -1
        assert "Malformed" in response.error

    @pytest.mark.asyncio
    async def test_unserializable_result(self):
        responder = Responder("test")

        async def returns_bytes(payload):
            return b"\x89PNG"

        responder.register(Action.CAPTURE_VIEWPORT, returns_bytes)
        raw = await responder.dispatch(RelayMessage(4, "capture-viewport").to_json())
        assert "Unserializable" in json.loads(raw)["error"]


class TestChannel:
    """Initiator side: results, errors, deadlines, cancellation."""

    @pytest.mark.asyncio
    async def test_request_returns_result(self):
        channel = RelayChannel("t", responder=make_responder())
        result = await channel.request(Action.SCROLL_TO, {"x": 0, "y": 1200})
        assert result == {"echo": {"x": 0, "y": 1200}}

    @pytest.mark.asyncio
    async def test_missing_receiver_is_transport_error(self):
        channel = RelayChannel("t")
        assert not channel.connected
        with pytest.raises(RelayTransportError, match="Receiving end does not exist"):
            await channel.request(Action.SCROLL_TO)

    @pytest.mark.asyncio
    async def test_detach_makes_receiver_unreachable(self):
        channel = RelayChannel("t", responder=make_responder())
        channel.detach()
        with pytest.raises(RelayTransportError):
            await channel.request(Action.SCROLL_TO)

    @pytest.mark.asyncio
    async def test_application_error_is_remote_error(self):
        channel = RelayChannel("t", responder=make_responder())
        with pytest.raises(RelayRemoteError, match="permission denied"):
            await channel.request(Action.CAPTURE_VIEWPORT)

    @pytest.mark.asyncio
    async def test_deadline_is_timeout_error(self):
        channel = RelayChannel("t", responder=make_responder(), timeout=0.05)
        with pytest.raises(RelayTimeoutError, match="await-paint"):
            await channel.request(Action.AWAIT_PAINT)

    @pytest.mark.asyncio
    async def test_per_call_timeout_overrides_channel_default(self):
        channel = RelayChannel("t", responder=make_responder(), timeout=None)
        with pytest.raises(RelayTimeoutError):
            await channel.request(Action.AWAIT_PAINT, timeout=0.05)

    @pytest.mark.asyncio
    async def test_deadline_with_token(self):
        channel = RelayChannel("t", responder=make_responder())
        token = CancellationToken()
        with pytest.raises(RelayTimeoutError):
            await channel.request(Action.AWAIT_PAINT, timeout=0.05, token=token)
        assert not token.cancelled

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_pending_request(self):
        channel = RelayChannel("t", responder=make_responder())
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.02)
            token.cancel("user aborted")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(CaptureCancelledError, match="user aborted"):
            await channel.request(Action.AWAIT_PAINT, token=token)
        await canceller

    @pytest.mark.asyncio
    async def test_cancelled_token_fails_fast(self):
        channel = RelayChannel("t", responder=make_responder())
        token = CancellationToken()
        token.cancel()
        with pytest.raises(CaptureCancelledError):
            await channel.request(Action.SCROLL_TO, token=token)

    @pytest.mark.asyncio
    async def test_request_ids_increase(self):
        seen = []
        responder = Responder("ids")
        original = responder.dispatch

        async def spy(raw):
            seen.append(RelayMessage.from_json(raw).request_id)
            return await original(raw)

        async def ok(payload):
            return True

        responder.register(Action.SCROLL_TO, ok)
        responder.dispatch = spy
        channel = RelayChannel("t", responder=responder)
        await channel.request(Action.SCROLL_TO)
        await channel.request(Action.SCROLL_TO)
        assert seen == [1, 2]
