import logging
from typing import Dict, Optional

from assistant_core.actions import handlers
from assistant_core.actions.handlers import ActionContext, Handler
from assistant_core.domain.actions import (
    ActionKind,
    ActionRequest,
    ActionResult,
    CONFIRMATION_REQUIRED,
    FailureKind,
)
from assistant_core.domain.exceptions import EntityNotFoundError, ExecutionError
from assistant_core.domain.workspace import ContextSnapshot
from assistant_core.infrastructure.images.unsplash import ImageSearch
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.workspace_repository import WorkspaceRepository


DISPATCH: Dict[ActionKind, Handler] = {
    ActionKind.CREATE_PROJECT: handlers.create_project,
    ActionKind.CREATE_TASK: handlers.create_task,
    ActionKind.CREATE_GOAL: handlers.create_goal,
    ActionKind.CREATE_ARTICLE: handlers.create_article,
    ActionKind.CREATE_FOLDER: handlers.create_folder,
    ActionKind.UPDATE_PROJECT: handlers.not_supported,
    ActionKind.ASSIGN_TASK: handlers.not_supported,
    ActionKind.UNASSIGN_TASK: handlers.not_supported,
    ActionKind.UPDATE_GOAL: handlers.not_supported,
    ActionKind.UPDATE_ARTICLE: handlers.not_supported,
    ActionKind.DELETE_ARTICLE: handlers.not_supported,
}

PROPOSERS: Dict[ActionKind, Handler] = {
    ActionKind.CREATE_TASK: handlers.propose_task,
}

# 写入失败时提示语中的实体名
_ENTITY_NOUNS: Dict[ActionKind, str] = {
    ActionKind.CREATE_PROJECT: "project",
    ActionKind.CREATE_TASK: "task",
    ActionKind.CREATE_GOAL: "goal",
    ActionKind.CREATE_ARTICLE: "article",
    ActionKind.CREATE_FOLDER: "folder",
}


def check_dispatch(dispatch: Dict[ActionKind, Handler]) -> None:
    """每个 ActionKind 必须有处理函数（未实现的也要显式映射到 not_supported）。"""

    missing = [k.value for k in ActionKind if k not in dispatch]
    if missing:
        raise RuntimeError(f"dispatch table is not exhaustive, missing: {missing}")
    unconfirmable = [k.value for k in CONFIRMATION_REQUIRED if k not in PROPOSERS]
    if unconfirmable:
        raise RuntimeError(f"no proposer for confirmation-gated actions: {unconfirmable}")


check_dispatch(DISPATCH)


class ActionExecutor:
    def __init__(
        self,
        repository: WorkspaceRepository,
        image_search: Optional[ImageSearch] = None,
        dispatch: Optional[Dict[ActionKind, Handler]] = None,
    ):
        self._repository = repository
        self._image_search = image_search
        self._dispatch = dict(dispatch or DISPATCH)
        check_dispatch(self._dispatch)

    def execute(
        self,
        action: ActionRequest,
        snapshot: ContextSnapshot,
        user_id: str,
        confirmed: bool = False,
        trace_id: Optional[str] = None,
    ) -> ActionResult:
        """执行一个已解析的动作。

        需要两阶段确认的动作在 confirmed=False 时只返回提议（pending_action），不写库。
        写入失败（ExecutionError）转换为带具体原因的失败结果，不重试。
        """

        kind = action.kind
        ctx = ActionContext(
            user_id=user_id,
            snapshot=snapshot,
            repository=self._repository,
            image_search=self._image_search,
            trace_id=trace_id,
        )
        log_ctx = {"trace_id": trace_id, "user_id": user_id, "action": kind.value, "confirmed": confirmed}
        self._log(logging.INFO, "action_start", log_ctx)

        if kind in CONFIRMATION_REQUIRED and not confirmed:
            handler = PROPOSERS[kind]
        else:
            handler = self._dispatch[kind]

        try:
            result = handler(action, ctx)
        except EntityNotFoundError as e:
            self._log(logging.INFO, "action_not_found", {**log_ctx, **e.extra})
            return ActionResult(message=e.message, failure=FailureKind.NOT_FOUND)
        except ExecutionError as e:
            noun = _ENTITY_NOUNS.get(kind, "action")
            self._log(logging.ERROR, "action_write_failed", {**log_ctx, "error": e.message})
            return ActionResult(
                message=f"I failed to create the {noun}. The database said: {e.message}",
                failure=FailureKind.EXECUTION_ERROR,
            )

        self._log(
            logging.INFO,
            "action_end",
            {
                **log_ctx,
                "failure": result.failure.value if result.failure else None,
                "deep_link": result.deep_link,
                "affected": list(result.affected),
                "proposed": result.pending_action is not None,
            },
        )
        return result

    @staticmethod
    def _log(level: int, event: str, payload: dict) -> None:
        logger.log(level, event, extra={"extra": {"event": event, **payload}})
