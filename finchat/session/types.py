from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Author of a transcript turn."""
    USER = "user"
    ASSISTANT = "assistant"


class SessionStatus(str, Enum):
    """Gate for outbound requests.

    Attributes:
        IDLE: No request is outstanding; a new submission may be accepted.
        PENDING: One request is outstanding; submissions are dropped until it resolves.
    """
    IDLE = "idle"
    PENDING = "pending"


class EventType(str, Enum):
    """Enumeration of user intents forwarded from a presentation adapter.

    Attributes:
        USER_MESSAGE: The user sent text; the payload is the raw, untrimmed input.
        RESET: The user asked to clear the conversation.
    """
    USER_MESSAGE = "user_message"
    RESET = "reset"


@dataclass(frozen=True)
class Event:
    """Immutable intent that carries type and optional payload data.

    Attributes:
        event_type: The type of the event (EventType enum value).
        payload: Optional data associated with the event. For USER_MESSAGE, this is the user input string.
    """
    event_type: EventType
    payload: Any = None


@dataclass(frozen=True)
class Turn:
    """One message of the conversation, tagged with its author."""
    role: Role
    content: str

    def to_message(self) -> dict[str, str]:
        """Return the chat-format dict sent to completion backends."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class SessionSnapshot:
    """What observers see after a mutation.

    Attributes:
        transcript: All turns in creation order.
        status: The session status at the time of the snapshot.
        generation: Number of resets performed so far.
    """
    transcript: tuple[Turn, ...]
    status: SessionStatus
    generation: int = 0
