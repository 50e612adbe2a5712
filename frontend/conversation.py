"""In-memory chat state for one record.

Lives in st.session_state for the browser session only. Assistant messages
grow fragment by fragment while streaming and are frozen afterwards.
"""

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone

GREETING_TEMPLATE = (
    "Hello! I'm Cosmos. I can explain this image of \"{title}\" "
    "or answer any astronomy questions you have."
)


@dataclass
class ChatMessage:
    id: int
    role: str  # "user" or "assistant"
    text: str
    created_at: datetime
    streaming: bool = False
    greeting: bool = False

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
        }


class Conversation:
    """Ordered messages about one record, starting with a local greeting."""

    def __init__(self, record_title: str):
        self._ids = itertools.count()
        self.messages: list[ChatMessage] = []
        self._append("assistant", GREETING_TEMPLATE.format(title=record_title), greeting=True)

    def _append(self, role: str, text: str, streaming: bool = False, greeting: bool = False) -> ChatMessage:
        msg = ChatMessage(
            id=next(self._ids),
            role=role,
            text=text,
            created_at=datetime.now(timezone.utc),
            streaming=streaming,
            greeting=greeting,
        )
        self.messages.append(msg)
        return msg

    def add_user(self, text: str) -> ChatMessage:
        return self._append("user", text)

    def start_assistant(self) -> ChatMessage:
        """Empty assistant message that fragments are appended to."""
        return self._append("assistant", "", streaming=True)

    def append_fragment(self, msg: ChatMessage, fragment: str) -> str:
        """Grow a streaming message. Returns the text so far."""
        if not msg.streaming:
            raise ValueError(f"Message {msg.id} is no longer streaming")
        msg.text += fragment
        return msg.text

    def finish(self, msg: ChatMessage) -> None:
        msg.streaming = False

    def discard(self, msg: ChatMessage) -> None:
        """Drop a failed assistant message."""
        self.messages = [m for m in self.messages if m.id != msg.id]

    def history(self) -> list[dict]:
        """Completed turns to send as context; the greeting stays local."""
        return [m.to_payload() for m in self.messages if not m.greeting and not m.streaming]
