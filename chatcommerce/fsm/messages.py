from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from chatcommerce.fsm.session import ConversationSession


@dataclass(frozen=True)
class ChoiceOption:
    id: str
    label: str
    description: str | None = None


@dataclass(frozen=True)
class TextMessage:
    body: str


@dataclass(frozen=True)
class ChoiceMessage:
    prompt: str
    options: tuple[ChoiceOption, ...]


OutboundMessage = Union[TextMessage, ChoiceMessage]


@dataclass
class TransitionResult:
    session: ConversationSession
    messages: list[OutboundMessage] = field(default_factory=list)


def message_to_dict(message: OutboundMessage) -> dict[str, Any]:
    if isinstance(message, ChoiceMessage):
        return {
            "type": "choice",
            "prompt": message.prompt,
            "options": [
                {"id": option.id, "label": option.label, "description": option.description}
                for option in message.options
            ],
        }
    return {"type": "text", "body": message.body}


def message_body(message: OutboundMessage) -> str:
    if isinstance(message, ChoiceMessage):
        labels = " | ".join(option.label for option in message.options)
        return f"{message.prompt} [{labels}]"
    return message.body
