"""会话管理器：一轮对话的完整生命周期。

状态机：Idle -> Sending -> Awaiting -> Settled -> Idle

1. 先乐观地追加用户消息（之后无论成功失败都不回滚）；
2. 检查待确认提议：过期丢弃；肯定答复则直接执行提议的动作（不再调用模型）；
   其他答复丢弃提议并按普通消息处理；
3. 调用流水线，追加助手消息（reply_to_id 指向本轮用户消息）；
4. 保存新的提议，并按结果声明的 affected 视图刷新缓存；
   助手消息或提议写入失败时仍刷新缓存，返回带错误码的结果而不抛出。

同一用户同一时刻只允许一轮请求在处理中，第二轮直接抛出 ConversationBusyError。
"""

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple
from uuid import uuid4

from pydantic import ValidationError

from assistant_core.config.settings import settings as default_settings
from assistant_core.domain.actions import action_to_payload, parse_action
from assistant_core.domain.conversation import ConversationMessage, ConversationStore, PendingProposal
from assistant_core.domain.exceptions import ConversationBusyError, StoreError
from assistant_core.flows.pipeline import AssistantPipeline, PipelineRequest, PipelineResponse, trouble_message
from assistant_core.infrastructure.logging.logger import logger


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING = "awaiting"
    SETTLED = "settled"


class CacheInvalidator(Protocol):
    def invalidate(self, user_id: str, keys: Sequence[str]) -> None:
        ...


class LoggingCacheInvalidator:
    """默认实现：只记录需要刷新的视图，由宿主应用接入真正的缓存。"""

    def invalidate(self, user_id: str, keys: Sequence[str]) -> None:
        logger.log(
            logging.INFO,
            "invalidate views",
            extra={"extra": {"event": "cache_invalidate", "user_id": user_id, "keys": list(keys)}},
        )


_AFFIRMATIVE_WORDS = {"yes", "yeah", "yep", "yup", "sure", "ok", "okay", "proceed", "confirm", "confirmed", "y"}
_AFFIRMATIVE_PHRASES = ("do it", "go ahead", "please do", "sounds good", "go for it")
# 含有这些词时视为否定或修改提议
_NEGATIONS = {"no", "not", "don't", "dont", "cancel", "stop", "wait", "nope", "never", "but", "instead"}


def is_affirmative(text: str) -> bool:
    """判断用户回复是否为对提议的确认。"""

    normalized = (text or "").lower()
    tokens = re.findall(r"[a-z']+", normalized)
    if not tokens or any(t in _NEGATIONS for t in tokens):
        return False
    joined = " ".join(tokens)
    if any(phrase in joined for phrase in _AFFIRMATIVE_PHRASES):
        return True
    return tokens[0] in _AFFIRMATIVE_WORDS and len(tokens) <= 5


@dataclass
class TurnResult:
    user_message: ConversationMessage
    assistant_message: ConversationMessage
    deep_link: Optional[str] = None
    affected: Tuple[str, ...] = ()
    proposal: Optional[PendingProposal] = None
    description: Optional[str] = None
    error_code: Optional[str] = None


class ConversationManager:
    def __init__(
        self,
        store: ConversationStore,
        pipeline: AssistantPipeline,
        invalidator: Optional[CacheInvalidator] = None,
        settings=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._pipeline = pipeline
        self._invalidator = invalidator or LoggingCacheInvalidator()
        self._settings = settings or default_settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._states: Dict[str, TurnState] = {}

    # ---- 查询 ----

    def turn_state(self, user_id: str) -> TurnState:
        return self._states.get(user_id, TurnState.IDLE)

    def greeting(self) -> str:
        return self._settings.assistant_greeting

    def list_messages(self, user_id: str) -> List[ConversationMessage]:
        return self._store.list_messages(user_id)

    def pending_proposal(self, user_id: str) -> Optional[PendingProposal]:
        proposal = self._store.get_pending_proposal(user_id)
        if proposal is not None and proposal.is_expired(self._clock()):
            return None
        return proposal

    # ---- 一轮对话 ----

    def send(self, user_id: str, content: str, attachment_name: Optional[str] = None) -> TurnResult:
        lock = self._lock_for(user_id)
        if not lock.acquire(blocking=False):
            raise ConversationBusyError(
                code="CONVERSATION_BUSY",
                message="A previous message is still being processed.",
                http_status=409,
                user_id=user_id,
            )
        trace_id = f"tr-{uuid4().hex}"
        log_ctx: Dict[str, Any] = {"trace_id": trace_id, "user_id": user_id}
        try:
            self._states[user_id] = TurnState.SENDING
            history = self._store.list_messages(user_id)
            user_meta: Dict[str, Any] = {}
            if attachment_name:
                user_meta["attachment_name"] = attachment_name
            user_msg = ConversationMessage(
                id=f"m-{uuid4().hex}",
                conversation_id=user_id,
                sender="user",
                content=content,
                created_at=self._next_timestamp(history[-1].created_at if history else None),
                meta=user_meta,
            )
            self._store.append_message(user_msg)
            self._log(logging.INFO, "Stored user message", log_ctx, message_id=user_msg.id)

            self._states[user_id] = TurnState.AWAITING
            confirmed_action = self._take_confirmed_action(user_id, content, user_msg.created_at, log_ctx)
            response = self._run_pipeline(
                PipelineRequest(
                    user_id=user_id,
                    message=content,
                    history=history,
                    attachment_name=attachment_name,
                    confirmed_action=confirmed_action,
                    trace_id=trace_id,
                ),
                log_ctx,
            )

            assistant_meta: Dict[str, Any] = {
                "assistant_id": self._settings.assistant_id,
                "assistant_name": self._settings.assistant_name,
            }
            if response.deep_link:
                assistant_meta["deep_link"] = response.deep_link
            if response.error_code:
                assistant_meta["error_code"] = response.error_code
                assistant_meta["description"] = response.description
            assistant_msg = ConversationMessage(
                id=f"m-{uuid4().hex}",
                conversation_id=user_id,
                sender="assistant",
                content=response.result_text,
                created_at=self._next_timestamp(user_msg.created_at),
                reply_to_id=user_msg.id,
                meta=assistant_meta,
            )
            proposal = None
            stored = False
            error_code, description = response.error_code, response.description
            try:
                self._store.append_message(assistant_msg)
                stored = True
                if response.pending_action is not None:
                    proposal = self._save_proposal(user_id, response.pending_action, assistant_msg.created_at)
            except StoreError as e:
                # 动作可能已提交：照常刷新视图，并把回复作为未落库消息返回
                logger.exception(
                    "Failed to persist assistant reply",
                    extra={"extra": {**log_ctx, "event": "reply_persist_failed", "code": e.code}},
                )
                if not stored:
                    assistant_msg.meta["persisted"] = False
                error_code, description = e.code, e.message
            if response.affected:
                self._invalidator.invalidate(user_id, response.affected)

            self._states[user_id] = TurnState.SETTLED
            self._log(
                logging.INFO,
                "Completed turn",
                log_ctx,
                user_message_id=user_msg.id,
                assistant_message_id=assistant_msg.id,
                error_code=error_code,
                proposed=proposal is not None,
            )
            return TurnResult(
                user_message=user_msg,
                assistant_message=assistant_msg,
                deep_link=response.deep_link,
                affected=tuple(response.affected),
                proposal=proposal,
                description=description,
                error_code=error_code,
            )
        finally:
            self._states[user_id] = TurnState.IDLE
            lock.release()

    # ---- 内部 ----

    def _run_pipeline(self, request: PipelineRequest, log_ctx: Dict[str, Any]) -> PipelineResponse:
        try:
            return self._pipeline.handle(request)
        except Exception as e:
            # 业务错误已在 handle 中转换；这里兜底未预期的异常，保证总有一条助手回复
            logger.exception("pipeline crashed", extra={"extra": {**log_ctx, "event": "pipeline_crashed"}})
            return PipelineResponse(
                result_text=trouble_message(str(e) or type(e).__name__),
                description=str(e) or type(e).__name__,
                error_code="INTERNAL_ERROR",
            )

    def _take_confirmed_action(self, user_id: str, content: str, now: datetime, log_ctx: Dict[str, Any]):
        proposal = self._store.get_pending_proposal(user_id)
        if proposal is None:
            return None
        # 无论确认与否，提议只消费一次
        self._store.clear_pending_proposal(user_id)
        if proposal.is_expired(now):
            self._log(logging.INFO, "Discarded expired proposal", log_ctx, kind=proposal.kind)
            return None
        if not is_affirmative(content):
            self._log(logging.INFO, "Proposal declined", log_ctx, kind=proposal.kind)
            return None
        try:
            action = parse_action(proposal.payload)
        except ValidationError as e:
            self._log(logging.WARNING, "Stored proposal is invalid", log_ctx, kind=proposal.kind, error=str(e))
            return None
        self._log(logging.INFO, "Proposal confirmed", log_ctx, kind=proposal.kind)
        return action

    def _save_proposal(self, user_id: str, action, now: datetime) -> PendingProposal:
        proposal = PendingProposal(
            kind=action.kind.value,
            payload=action_to_payload(action),
            created_at=now,
            expires_at=now + timedelta(seconds=self._settings.proposal_ttl_seconds),
        )
        self._store.set_pending_proposal(user_id, proposal)
        return proposal

    def _next_timestamp(self, after: Optional[datetime]) -> datetime:
        now = self._clock()
        if after is not None and now <= after:
            now = after + timedelta(microseconds=1)
        return now

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
