"""对外 API 服务模块。

提供简化的函数接口供上层应用（HTTP 处理器、任务队列等）调用。
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from assistant_core.assistant.conversation_manager import ConversationManager
from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationMessage, ConversationStore
from assistant_core.flows.pipeline import AssistantPipeline, PipelineRequest
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.json_store import JsonConversationStore
from assistant_core.infrastructure.storage.workspace_repository import WorkspaceRepository


_store: Optional[ConversationStore] = None
_repository: Optional[WorkspaceRepository] = None
_pipeline: Optional[AssistantPipeline] = None
_manager: Optional[ConversationManager] = None


def get_default_pipeline() -> AssistantPipeline:
    """获取默认的流水线实例（单例）。"""
    global _repository, _pipeline
    if _repository is None:
        _repository = WorkspaceRepository.from_settings()
    if _pipeline is None:
        _pipeline = AssistantPipeline(_repository)
    return _pipeline


def get_default_manager() -> ConversationManager:
    """获取默认的会话管理器实例（单例）。"""
    global _store, _manager
    if _store is None:
        _store = JsonConversationStore(root=settings.storage_root)
    if _manager is None:
        _manager = ConversationManager(_store, get_default_pipeline())
    return _manager


def configure(
    store: Optional[ConversationStore] = None,
    repository: Optional[WorkspaceRepository] = None,
    pipeline: Optional[AssistantPipeline] = None,
    manager: Optional[ConversationManager] = None,
) -> None:
    """替换默认组件（测试或宿主应用自定义装配时使用）。"""
    global _store, _repository, _pipeline, _manager
    _store, _repository, _pipeline, _manager = store, repository, pipeline, manager


def _message_to_dict(m: ConversationMessage) -> Dict[str, Any]:
    return {
        "id": m.id,
        "sender": m.sender,
        "content": m.content,
        "created_at": m.created_at.isoformat(),
        "reply_to_id": m.reply_to_id,
        "meta": m.meta,
    }


def send_assistant_message(
    user_id: str,
    message: str,
    attachment_name: Optional[str] = None,
) -> Dict[str, Any]:
    """发送一条消息并返回本轮结果。

    Returns:
        包含用户消息、助手消息、深链接、受影响视图、待确认提议的字典

    Raises:
        ConversationBusyError: 该用户已有一轮请求在处理中
        StoreError: 用户消息无法写入（助手回复的写入失败以 error_code 返回）
    """
    try:
        result = get_default_manager().send(user_id, message, attachment_name=attachment_name)
    except Exception as e:
        logger.error(f"Assistant turn failed: {e}", extra={"extra": {
            "user_id": user_id,
            "error": str(e),
        }})
        raise
    return {
        "user_message": _message_to_dict(result.user_message),
        "assistant_message": _message_to_dict(result.assistant_message),
        "deep_link": result.deep_link,
        "affected": list(result.affected),
        "description": result.description,
        "error_code": result.error_code,
        "pending_proposal": (
            {
                "kind": result.proposal.kind,
                "expires_at": result.proposal.expires_at.isoformat(),
            }
            if result.proposal
            else None
        ),
    }


def run_pipeline(user_id: str, message: str, history: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """无状态地运行一次流水线：{message, history} -> {result_text, description?}。

    history 中的每项需包含 sender（"user" / "assistant"，兼容 "ai"）与 content。
    不读写会话历史。
    """
    now = datetime.now(timezone.utc)
    records = [
        ConversationMessage(
            id=str(item.get("id") or f"h-{i}"),
            conversation_id=user_id,
            sender="assistant" if item.get("sender") in ("assistant", "ai") else "user",
            content=str(item.get("content") or ""),
            created_at=now + timedelta(microseconds=i),
        )
        for i, item in enumerate(history or [])
    ]
    response = get_default_pipeline().handle(PipelineRequest(user_id=user_id, message=message, history=records))
    out: Dict[str, Any] = {"result_text": response.result_text}
    if response.description:
        out["description"] = response.description
    if response.deep_link:
        out["deep_link"] = response.deep_link
    if response.affected:
        out["affected"] = list(response.affected)
    return out


def get_conversation_messages(user_id: str) -> List[Dict[str, Any]]:
    """获取用户会话的全部消息（按时间顺序）。

    会话为空时返回一条不落库的欢迎语。
    """
    manager = get_default_manager()
    msgs = manager.list_messages(user_id)
    if not msgs:
        return [{
            "id": "greeting",
            "sender": "assistant",
            "content": manager.greeting(),
            "created_at": None,
            "reply_to_id": None,
            "meta": {"persisted": False},
        }]
    return [_message_to_dict(m) for m in msgs]


def get_pending_proposal(user_id: str) -> Optional[Dict[str, Any]]:
    """返回当前未过期的待确认提议（若有）。"""
    proposal = get_default_manager().pending_proposal(user_id)
    if proposal is None:
        return None
    return {
        "kind": proposal.kind,
        "payload": proposal.payload,
        "created_at": proposal.created_at.isoformat(),
        "expires_at": proposal.expires_at.isoformat(),
    }
