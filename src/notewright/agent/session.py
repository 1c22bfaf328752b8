"""Conversation session: the append-only history resent to the model every turn."""

from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    List,
    Sequence,
)

from notewright.core.schema import (
    Message,
    Part,
    TextPart,
    TurnResponse,
)

if TYPE_CHECKING:
    from notewright.agent.provider_interface import BaseProvider
    from notewright.tools import ToolDeclaration

logger = logging.getLogger(__name__)


class ChatSession:
    """
    Holds the history of one run and sends new messages through the provider.

    The model is stateless between calls, so every turn carries the whole history.  A failed
    send leaves the history untouched so the same message can be retried.
    """

    def __init__(
        self,
        provider: "BaseProvider",
        system_instruction: str | None = None,
        history: Sequence[Message] | None = None,
    ) -> None:
        self.provider = provider
        self.system_instruction = system_instruction
        self.history: List[Message] = list(history or [])

    async def send(
        self, parts: Sequence[Part], tools: Sequence["ToolDeclaration"]
    ) -> TurnResponse:
        """Send *parts* as the next user message and record the model's reply."""
        outgoing = Message(role="user", parts=list(parts))
        response = await self.provider.send_turn(
            [*self.history, outgoing], tools, self.system_instruction
        )

        reply: List[Part] = []
        if response.text:
            reply.append(TextPart(content=response.text))
        reply.extend(response.tool_calls)
        self.history.append(outgoing)
        self.history.append(Message(role="model", parts=reply))
        logger.debug("Session history is now %d messages", len(self.history))
        return response
