"""Turn stored thread state into the message list the chat model consumes."""

from __future__ import annotations

from collections.abc import Sequence

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage

from youdoyou.models import Message, MessageRole
from youdoyou.prompts import get_system_prompt


def build_turns(summary: str, messages: Sequence[Message]) -> list[AnyMessage]:
    """Map (summary, history) to ``[system, turn per message...]``.

    ``user`` messages become human turns and every other role becomes an
    assistant turn.  Content is passed through untouched.  The function
    has no side effects, so a retried run rebuilds the same turns.
    """
    turns: list[AnyMessage] = [SystemMessage(content=get_system_prompt(summary))]
    for message in messages:
        if message.role == MessageRole.USER:
            turns.append(HumanMessage(content=message.content))
        else:
            turns.append(AIMessage(content=message.content))
    return turns
