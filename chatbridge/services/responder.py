"""Rule-based reply generation for inbound messages."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from typing import Final

from .. import __version__

HELP_TEXT: Final[str] = (
    "\U0001f916 *Available Commands:*\n\n"
    "• !hello - Greet the bot\n"
    "• !info - Bot information\n"
    "• !time - Current time\n"
    "• !help - Show this help menu\n"
    "• !status - Check bot status"
)

INFO_TEXT: Final[str] = f"*Bot Information:*\n\n• Version: {__version__}\n• Status: Active"

# Checked in order; the first rule with a matching substring wins.
KEYWORD_RULES: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("price", "cost", "how much"), "Our prices start from $10. Would you like to know more about our services?"),
    (("thank", "thanks"), "You're welcome! \U0001f60a Is there anything else I can help with?"),
    (("hi", "hello", "hey"), "Hello! \U0001f44b How can I help you today?"),
    (("bye", "goodbye"), "Goodbye! \U0001f44b Have a great day!"),
    (("help", "support"), "I can help you with basic queries. Type !help to see all commands."),
)


class RuleResponder:
    """Map a message body to a reply using exact commands, then keywords."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._commands: dict[str, Callable[[], str]] = {
            "!hello": lambda: "Hello! \U0001f44b How can I assist you today?",
            "!help": lambda: HELP_TEXT,
            "!info": lambda: INFO_TEXT,
            "!time": self._time_reply,
            "!status": lambda: "✅ Bot is online and running!",
        }

    @property
    def commands(self) -> tuple[str, ...]:
        return tuple(self._commands)

    def _time_reply(self) -> str:
        now = datetime.fromtimestamp(self._clock()).astimezone()
        return f"\U0001f552 Current time: {now.strftime('%Y-%m-%d %H:%M:%S %Z')}"

    def respond(self, body: str) -> str | None:
        """Return the reply for *body*, or None when no rule applies."""
        command = body.strip().lower()
        if not command:
            return None

        handler = self._commands.get(command)
        if handler is not None:
            return handler()

        for keywords, reply in KEYWORD_RULES:
            if any(keyword in command for keyword in keywords):
                return reply
        return None


__all__ = ["HELP_TEXT", "INFO_TEXT", "KEYWORD_RULES", "RuleResponder"]
