"""High-level entry point for the assistant pipeline.

run() 在失败时抛出 BusinessError；handle() 把业务错误转换为
"Sorry, I'm having trouble: ..." 形式的回复，并在 description 中保留原因。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple
from uuid import uuid4

from assistant_core.actions.executor import ActionExecutor
from assistant_core.assistant.context_builder import ContextBuilder
from assistant_core.assistant.gateway import LLMGateway
from assistant_core.assistant.protocol import ProtocolCompiler
from assistant_core.domain.conversation import ConversationMessage
from assistant_core.domain.exceptions import BusinessError
from assistant_core.flows.graph import PipelineComponents, build_graph
from assistant_core.flows.state import PipelineState
from assistant_core.infrastructure.images.unsplash import ImageSearch, UnsplashImageSearch
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.workspace_repository import WorkspaceRepository


@dataclass
class PipelineRequest:
    user_id: str
    message: str
    history: List[ConversationMessage] = field(default_factory=list)
    attachment_name: Optional[str] = None
    confirmed_action: Optional[Any] = None
    trace_id: Optional[str] = None


@dataclass
class PipelineResponse:
    result_text: str
    description: Optional[str] = None
    error_code: Optional[str] = None
    deep_link: Optional[str] = None
    affected: Tuple[str, ...] = ()
    pending_action: Optional[Any] = None


def trouble_message(description: str) -> str:
    return f"Sorry, I'm having trouble: {description}"


class AssistantPipeline:
    def __init__(
        self,
        repository: WorkspaceRepository,
        gateway: Optional[LLMGateway] = None,
        image_search: Optional[ImageSearch] = None,
        context_builder: Optional[ContextBuilder] = None,
        compiler: Optional[ProtocolCompiler] = None,
        executor: Optional[ActionExecutor] = None,
    ):
        self._gateway = gateway or LLMGateway()
        self._components = PipelineComponents(
            context_builder=context_builder or ContextBuilder(repository),
            compiler=compiler or ProtocolCompiler(),
            gateway=self._gateway,
            executor=executor or ActionExecutor(repository, image_search or UnsplashImageSearch()),
        )
        self._graph = build_graph(self._components)

    def run(self, request: PipelineRequest) -> PipelineResponse:
        trace_id = request.trace_id or uuid4().hex
        log_ctx = {"trace_id": trace_id, "user_id": request.user_id, "confirmed": request.confirmed_action is not None}
        logger.log(logging.INFO, "pipeline_start", extra={"extra": {"event": "pipeline_start", **log_ctx}})

        if request.confirmed_action is None:
            # 凭据缺失时在读取上下文、调用模型之前失败
            self._gateway.ensure_configured()

        state: PipelineState = {
            "trace_id": trace_id,
            "user_id": request.user_id,
            "message": request.message,
            "attachment_name": request.attachment_name,
            "history": list(request.history),
            "confirmed_action": request.confirmed_action,
            "action": None,
            "deep_link": None,
            "affected": (),
            "pending_action": None,
        }
        result = self._graph.invoke(state)
        response = PipelineResponse(
            result_text=result.get("result_text") or "",
            deep_link=result.get("deep_link"),
            affected=tuple(result.get("affected") or ()),
            pending_action=result.get("pending_action"),
        )
        logger.log(
            logging.INFO,
            "pipeline_end",
            extra={
                "extra": {
                    "event": "pipeline_end",
                    **log_ctx,
                    "deep_link": response.deep_link,
                    "affected": list(response.affected),
                    "proposed": response.pending_action is not None,
                }
            },
        )
        return response

    def handle(self, request: PipelineRequest) -> PipelineResponse:
        request.trace_id = request.trace_id or uuid4().hex
        try:
            return self.run(request)
        except BusinessError as e:
            logger.log(
                logging.ERROR,
                "pipeline_failed",
                extra={
                    "extra": {
                        "event": "pipeline_failed",
                        "trace_id": request.trace_id,
                        "user_id": request.user_id,
                        "code": e.code,
                        "error": e.message,
                    }
                },
            )
            return PipelineResponse(
                result_text=trouble_message(e.message),
                description=e.message,
                error_code=e.code,
            )
