"""Tests for the rule-based responder."""

from __future__ import annotations

from datetime import datetime

import pytest

from chatbridge import __version__
from chatbridge.services.responder import HELP_TEXT, RuleResponder


@pytest.fixture()
def responder() -> RuleResponder:
    return RuleResponder(clock=lambda: 1_700_000_000.0)


def test_exact_commands_are_recognised(responder: RuleResponder) -> None:
    assert responder.respond("!help") == HELP_TEXT
    assert "How can I assist you" in (responder.respond("!hello") or "")
    assert __version__ in (responder.respond("!info") or "")
    assert "online" in (responder.respond("!status") or "")


def test_commands_ignore_case_and_surrounding_space(responder: RuleResponder) -> None:
    assert responder.respond("  !HELP \n") == HELP_TEXT


def test_help_lists_every_command(responder: RuleResponder) -> None:
    for command in responder.commands:
        assert command in HELP_TEXT


def test_time_uses_injected_clock(responder: RuleResponder) -> None:
    expected_date = datetime.fromtimestamp(1_700_000_000.0).astimezone().strftime("%Y-%m-%d")

    reply = responder.respond("!time") or ""

    assert reply.startswith("\U0001f552 Current time:")
    assert expected_date in reply


@pytest.mark.parametrize(
    ("body", "fragment"),
    [
        ("What does it cost?", "prices start from $10"),
        ("How much is it", "prices start from $10"),
        ("thanks a lot", "You're welcome"),
        ("Hey there", "How can I help you today"),
        ("ok goodbye", "Have a great day"),
        ("need support", "Type !help"),
    ],
)
def test_keyword_rules(responder: RuleResponder, body: str, fragment: str) -> None:
    assert fragment in (responder.respond(body) or "")


def test_first_matching_keyword_rule_wins(responder: RuleResponder) -> None:
    reply = responder.respond("thanks, bye") or ""

    assert "You're welcome" in reply


@pytest.mark.parametrize("body", ["", "   ", "lorem ipsum", "!unknown"])
def test_no_rule_returns_none(responder: RuleResponder, body: str) -> None:
    assert responder.respond(body) is None
