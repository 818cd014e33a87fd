from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Literal, Protocol
from datetime import datetime


Sender = Literal["user", "assistant"]


@dataclass
class ConversationMessage:
    """一条已持久化的会话消息（每个用户一个会话，只追加不修改）。"""

    id: str
    conversation_id: str  # 即用户 ID
    sender: Sender
    content: str
    created_at: datetime
    reply_to_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PendingProposal:
    """两阶段确认中等待用户确认的动作。

    payload 为动作负载的 JSON 形式（含 "action" 字段），
    下一轮用户肯定答复时原样执行，过期或否定答复时丢弃。
    """

    kind: str
    payload: Dict[str, Any]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ConversationStore(Protocol):
    def append_message(self, message: ConversationMessage) -> None:
        ...

    def get_message(self, conversation_id: str, message_id: str) -> ConversationMessage:
        ...

    def list_messages(self, conversation_id: str) -> List[ConversationMessage]:
        ...

    def get_pending_proposal(self, conversation_id: str) -> Optional[PendingProposal]:
        ...

    def set_pending_proposal(self, conversation_id: str, proposal: PendingProposal) -> None:
        ...

    def clear_pending_proposal(self, conversation_id: str) -> None:
        ...
