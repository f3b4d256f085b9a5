"""Tests for inbound message dispatch."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbridge.client.events import InboundMessage, SendResult
from chatbridge.services.dispatcher import DispatchOutcome, MessageDispatcher
from chatbridge.services.responder import HELP_TEXT, RuleResponder
from chatbridge.state.context import RuntimeState
from mocks import FakeNetworkClient


def _dispatcher(
    state: RuntimeState,
    client: FakeNetworkClient,
    responder: object | None = None,
) -> tuple[MessageDispatcher, MagicMock]:
    spy = MagicMock(wraps=responder or RuleResponder())
    return MessageDispatcher(state, spy, client), spy


@pytest.mark.asyncio
async def test_broadcast_sender_is_filtered(runtime_state: RuntimeState, fake_client: FakeNetworkClient) -> None:
    dispatcher, responder = _dispatcher(runtime_state, fake_client)

    outcome = await dispatcher.dispatch(InboundMessage(sender="status@broadcast", body="x"))

    assert outcome is DispatchOutcome.FILTERED
    responder.respond.assert_not_called()
    assert fake_client.replies == []
    assert runtime_state.dispatch_stats.filtered == 1
    assert runtime_state.dispatch_stats.received == 1


@pytest.mark.asyncio
async def test_help_command_gets_single_reply(runtime_state: RuntimeState, fake_client: FakeNetworkClient) -> None:
    dispatcher, responder = _dispatcher(runtime_state, fake_client)
    message = InboundMessage(sender="user1", body="!help", id="m1")

    outcome = await dispatcher.dispatch(message)

    assert outcome is DispatchOutcome.REPLIED
    responder.respond.assert_called_once_with("!help")
    assert fake_client.replies == [(message, HELP_TEXT)]
    assert runtime_state.dispatch_stats.replied == 1


@pytest.mark.asyncio
async def test_message_without_rule_is_ignored(runtime_state: RuntimeState, fake_client: FakeNetworkClient) -> None:
    dispatcher, _ = _dispatcher(runtime_state, fake_client)

    outcome = await dispatcher.dispatch(InboundMessage(sender="user1", body="lorem ipsum"))

    assert outcome is DispatchOutcome.IGNORED
    assert fake_client.replies == []
    assert runtime_state.dispatch_stats.ignored == 1


@pytest.mark.asyncio
async def test_responder_error_is_contained(runtime_state: RuntimeState, fake_client: FakeNetworkClient) -> None:
    responder = MagicMock()
    responder.respond.side_effect = KeyError("rules")
    dispatcher = MessageDispatcher(runtime_state, responder, fake_client)

    outcome = await dispatcher.dispatch(InboundMessage(sender="user1", body="!help"))

    assert outcome is DispatchOutcome.FAILED
    assert runtime_state.dispatch_stats.failed == 1
    assert "responder error" in (runtime_state.dispatch_stats.last_error or "")
    assert fake_client.replies == []


@pytest.mark.asyncio
async def test_failed_send_result_is_counted(runtime_state: RuntimeState) -> None:
    client = FakeNetworkClient(reply_result=SendResult.failure("chat not found"))
    dispatcher, _ = _dispatcher(runtime_state, client)

    outcome = await dispatcher.dispatch(InboundMessage(sender="user1", body="!status"))

    assert outcome is DispatchOutcome.FAILED
    assert runtime_state.dispatch_stats.failed == 1
    assert "chat not found" in (runtime_state.dispatch_stats.last_error or "")


@pytest.mark.asyncio
async def test_raising_send_is_contained(runtime_state: RuntimeState) -> None:
    client = MagicMock()
    client.reply = AsyncMock(side_effect=ConnectionResetError("pipe closed"))
    dispatcher = MessageDispatcher(runtime_state, RuleResponder(), client)

    outcome = await dispatcher.dispatch(InboundMessage(sender="user1", body="!hello"))

    assert outcome is DispatchOutcome.FAILED
    client.reply.assert_awaited_once()
    assert "ConnectionResetError" in (runtime_state.dispatch_stats.last_error or "")


@pytest.mark.asyncio
async def test_malformed_message_is_rejected(runtime_state: RuntimeState, fake_client: FakeNetworkClient) -> None:
    dispatcher, responder = _dispatcher(runtime_state, fake_client)

    outcome = await dispatcher.dispatch("not a message")  # type: ignore[arg-type]

    assert outcome is DispatchOutcome.FAILED
    responder.respond.assert_not_called()


@pytest.mark.asyncio
async def test_custom_broadcast_sender_is_honoured(runtime_state: RuntimeState, fake_client: FakeNetworkClient) -> None:
    runtime_state.broadcast_sender = "news@channel"
    dispatcher, responder = _dispatcher(runtime_state, fake_client)

    filtered = await dispatcher.dispatch(InboundMessage(sender="news@channel", body="!help"))
    replied = await dispatcher.dispatch(InboundMessage(sender="status@broadcast", body="!help"))

    assert filtered is DispatchOutcome.FILTERED
    assert replied is DispatchOutcome.REPLIED
    assert responder.respond.call_count == 1
