from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple

from .history import ConversationDocument


EventType = Literal["chat:tags", "chat:input:toggle"]


@dataclass
class ChatRecord:
    id: str
    user_id: str
    title: str
    created_at: int
    updated_at: int
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatEvent:
    """推送给会话所属用户的实时事件。"""

    chat_id: str
    message_id: str
    user_id: str
    type: EventType
    data: Optional[Dict[str, Any]] = None

    def envelope(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "message_id": self.message_id,
            "data": {"type": self.type, "data": self.data},
        }

    @property
    def room(self) -> str:
        return f"user:{self.user_id}"


class ConversationStore(Protocol):
    def list_chats(self) -> List[ChatRecord]:
        ...

    def get_chat(self, chat_id: str) -> ChatRecord:
        ...

    def load_conversation(self, chat_id: str) -> ConversationDocument:
        ...

    def save_conversation(self, chat_id: str, document: ConversationDocument) -> ChatRecord:
        ...

    def transaction(self, chat_id: str) -> AbstractContextManager[Tuple[ChatRecord, ConversationDocument]]:
        ...


class Notifier(Protocol):
    name: str

    def notify(self, event: ChatEvent) -> None:
        ...
