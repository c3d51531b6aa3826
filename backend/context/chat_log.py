"""
Chat log management.

Responsibilities:
- Store ordered user/bot messages for the lifetime of the process
- Enforce append-only semantics and unique message ids
- Provide a serializable representation for the UI

Non-responsibilities:
- No reducer logic
- No answer formatting (see context.formatting)
- No persistence across restarts
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event


Sender = Literal["user", "bot"]


@dataclass(frozen=True)
class Message:
    """Single chat message. Bot text is stored already formatted."""
    id: str
    sender: Sender
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "sender": self.sender, "text": self.text}


class ChatLog:
    """
    Append-only chat log owned by the voice session.

    This object is intentionally imperative:
    - Reducer decides *what* to append (AppendMessage commands)
    - Runtime appends in command order

    Invariants:
    - Messages are stored in append order
    - Message ids are unique; a duplicate append is dropped and logged
    """

    def __init__(self, session_id: str | None = None) -> None:
        self._session_id = session_id
        self._messages: list[Message] = []
        self._ids: set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, message: Message) -> bool:
        """Append a message. Returns False if its id was already used."""
        if message.id in self._ids:
            log_event({
                "event_type": "chat_log_duplicate_id",
                "session_id": self._session_id,
                "message_id": message.id,
            })
            return False

        self._messages.append(message)
        self._ids.add(message.id)
        return True

    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize messages for the UI.

        Output format:
        [
          {"id": "msg_1", "sender": "user", "text": "..."},
          {"id": "msg_2", "sender": "bot", "text": "..."},
        ]
        """
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)
