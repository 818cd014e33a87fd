"""State definition for the assistant pipeline graph."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple, TypedDict

from assistant_core.domain.conversation import ConversationMessage
from assistant_core.domain.models import ChatMessage
from assistant_core.domain.workspace import ContextSnapshot


class PipelineState(TypedDict, total=False):
    """State shared across LangGraph nodes."""

    trace_id: str
    user_id: str
    message: str
    attachment_name: Optional[str]
    history: List[ConversationMessage]
    # 用户已确认的待执行动作：存在时跳过模型调用直接执行
    confirmed_action: Optional[Any]

    snapshot: ContextSnapshot
    system: str
    model_messages: List[ChatMessage]
    raw_text: str
    classification: Any
    action: Optional[Any]

    result_text: str
    deep_link: Optional[str]
    affected: Tuple[str, ...]
    pending_action: Optional[Any]
