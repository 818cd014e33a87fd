"""上下文构建：并行读取工作区数据，组装 ContextSnapshot。

六个读取（项目+任务、用户、目标、标签、文章、文件夹）相互独立，
通过线程池并行执行；任一读取失败则整次构建失败（ContextBuildError），
不会用空列表冒充"没有数据"。
"""

import logging
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Optional

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ContextBuildError
from assistant_core.domain.workspace import ContextSnapshot, ICON_CATALOG, SERVICE_CATALOG, UserProfile
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.workspace_repository import WorkspaceRepository


class ContextBuilder:
    def __init__(self, repository: WorkspaceRepository, project_limit: Optional[int] = None):
        self._repository = repository
        self._project_limit = project_limit or settings.context_project_limit

    def build(self, user_id: str, trace_id: Optional[str] = None) -> ContextSnapshot:
        started = time.perf_counter()
        log_ctx = {"trace_id": trace_id, "user_id": user_id}
        logger.log(logging.INFO, "context_build_start", extra={"extra": {"event": "context_build_start", **log_ctx}})

        repo = self._repository
        reads: Dict[str, Callable[[], Any]] = {
            "profile": lambda: repo.get_profile(user_id),
            "projects": lambda: repo.list_projects_for_user(user_id, self._project_limit),
            "users": repo.list_users,
            "goals": lambda: repo.list_goals(user_id),
            "tags": repo.list_tags,
            "articles": lambda: repo.list_articles(user_id),
            "folders": lambda: repo.list_folders(user_id),
        }

        results: Dict[str, Any] = {}
        with ThreadPoolExecutor(max_workers=len(reads), thread_name_prefix="context") as pool:
            futures = {pool.submit(fn): name for name, fn in reads.items()}
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
            for future in done:
                name = futures[future]
                exc = future.exception()
                if exc is not None:
                    logger.log(
                        logging.ERROR,
                        "context_build_failed",
                        extra={"extra": {"event": "context_build_failed", **log_ctx, "read": name, "error": str(exc)}},
                    )
                    raise ContextBuildError(
                        code="CONTEXT_BUILD_ERROR",
                        message=f"Failed to fetch {name}: {exc}",
                        read=name,
                    ) from exc
                results[name] = future.result()

        profile: Optional[UserProfile] = results["profile"]
        if profile is None:
            # 未建档用户仍可对话，仅缺少显示名
            profile = UserProfile(id=user_id, first_name=None, last_name=None, email=user_id)

        snapshot = ContextSnapshot(
            user=profile,
            projects=results["projects"],
            users=results["users"],
            goals=results["goals"],
            tags=results["tags"],
            articles=results["articles"],
            folders=results["folders"],
            service_catalog=list(SERVICE_CATALOG),
            icon_catalog=list(ICON_CATALOG),
        )
        logger.log(
            logging.INFO,
            "context_build_end",
            extra={
                "extra": {
                    "event": "context_build_end",
                    **log_ctx,
                    "projects": len(snapshot.projects),
                    "users": len(snapshot.users),
                    "goals": len(snapshot.goals),
                    "articles": len(snapshot.articles),
                    "folders": len(snapshot.folders),
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                }
            },
        )
        return snapshot
