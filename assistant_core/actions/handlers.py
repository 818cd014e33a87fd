"""动作处理函数：每个 ActionKind 一个。

处理函数签名统一为 (action, ctx) -> ActionResult：
- 负载校验失败时直接返回友好提示，引用无法解析时抛出 EntityNotFoundError，均不发生任何写入；
- 写入通过 WorkspaceRepository 的事务方法完成，数据库错误以 ExecutionError 抛出，
  由执行器统一转换为用户可读文本。
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from assistant_core.assistant.resolver import EntityResolver
from assistant_core.domain.actions import (
    ActionResult,
    CreateArticle,
    CreateFolder,
    CreateGoal,
    CreateProject,
    CreateTask,
    FailureKind,
    ViewKey,
)
from assistant_core.domain.exceptions import EntityNotFoundError
from assistant_core.domain.workspace import ContextSnapshot
from assistant_core.infrastructure.images.unsplash import ImageSearch
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.workspace_repository import NewGoal, NewProject, WorkspaceRepository


@dataclass
class ActionContext:
    user_id: str
    snapshot: ContextSnapshot
    repository: WorkspaceRepository
    image_search: Optional[ImageSearch] = None
    trace_id: Optional[str] = None

    @property
    def resolver(self) -> EntityResolver:
        return EntityResolver(self.snapshot)


Handler = Callable[[object, ActionContext], ActionResult]


# ---- 深链接 ----


def project_link(slug: str) -> str:
    return f"/projects/{slug}"


def task_link(project_slug: str, task_id: str) -> str:
    return f"/projects/{project_slug}/tasks/{task_id}"


def goal_link(slug: str) -> str:
    return f"/goals/{slug}"


def article_link(slug: str) -> str:
    return f"/knowledge-base/pages/{slug}"


def folder_link(slug: str) -> str:
    return f"/knowledge-base/folders/{slug}"


def _view_it(link: str) -> str:
    return f"You can view it [here]({link})."


def _quoted(names: List[str]) -> str:
    quoted = [f'"{n}"' for n in names]
    if len(quoted) <= 1:
        return "".join(quoted)
    return ", ".join(quoted[:-1]) + " and " + quoted[-1]


def _invalid(message: str) -> ActionResult:
    return ActionResult(message=message, failure=FailureKind.INVALID_REQUEST)


def _warn_unresolved(ctx: ActionContext, role: str, names: List[str]) -> None:
    if names:
        logger.log(
            logging.WARNING,
            f"unresolved {role}",
            extra={"extra": {"event": "unresolved_users", "trace_id": ctx.trace_id, "role": role, "names": names}},
        )


# ---- 项目 ----


def create_project(action: CreateProject, ctx: ActionContext) -> ActionResult:
    d = action.project_details
    name = (d.name or "").strip()
    if not name:
        return _invalid("I need a name to create a project.")

    member_ids, unresolved = ctx.resolver.users(d.members)
    _warn_unresolved(ctx, "members", unresolved)
    services = list(dict.fromkeys(s.strip() for s in d.services if s and s.strip()))

    project = ctx.repository.create_project(
        ctx.user_id,
        NewProject(
            name=name,
            description=d.description,
            start_date=d.start_date,
            due_date=d.due_date,
            venue=d.venue,
            budget=d.budget,
        ),
        services=services,
        member_ids=member_ids,
    )

    follow_up = ""
    if unresolved and not member_ids:
        follow_up = " but I couldn't find the users to add as members"
    elif unresolved:
        follow_up = f" but I couldn't find {_quoted(unresolved)} to add as members"

    link = project_link(project.slug)
    return ActionResult(
        message=f'Done! I\'ve created the project "{project.name}"{follow_up}. {_view_it(link)}',
        deep_link=link,
        affected=(ViewKey.PROJECTS, ViewKey.PROJECT),
    )


# ---- 任务 ----


def _validate_task(action: CreateTask, ctx: ActionContext):
    project_name = (action.project_name or "").strip()
    title = (action.task_title or "").strip()
    if not project_name or not title:
        return None, _invalid("I need both a project name and a task title to create a task.")
    project = ctx.resolver.find_project(project_name)
    if project is None:
        # 不自动创建项目
        raise EntityNotFoundError(
            code="PROJECT_NOT_FOUND",
            message=f'I couldn\'t find a project named "{project_name}".',
            entity="project",
            reference=project_name,
        )
    return project, None


def propose_task(action: CreateTask, ctx: ActionContext) -> ActionResult:
    """第一阶段：只给出建议并等待确认，不写库。"""

    project, failure = _validate_task(action, ctx)
    if failure is not None:
        return failure
    title = action.task_title.strip()
    assignee_ids, unresolved = ctx.resolver.users(action.assignees)
    names = {u.id: u.display_name for u in ctx.snapshot.users}
    parts = [f'I can create the task "{title}" in the "{project.name}" project']
    if assignee_ids:
        parts.append(f" and assign it to {_quoted([names[i] for i in assignee_ids])}")
    message = "".join(parts) + "."
    if unresolved:
        message += f" I couldn't find {_quoted(unresolved)}, so they won't be assigned."
    message += " Should I go ahead?"
    return ActionResult(message=message, pending_action=action)


def create_task(action: CreateTask, ctx: ActionContext) -> ActionResult:
    project, failure = _validate_task(action, ctx)
    if failure is not None:
        return failure
    title = action.task_title.strip()

    assignee_ids, unresolved = ctx.resolver.users(action.assignees)
    _warn_unresolved(ctx, "assignees", unresolved)
    task = ctx.repository.create_task(project.id, title, ctx.user_id, assignee_ids)

    follow_up = f" but I couldn't find {_quoted(unresolved)} to assign" if unresolved else ""
    link = task_link(project.slug, task.id)
    return ActionResult(
        message=f'Done! I\'ve created the task "{task.title}" in the "{project.name}" project{follow_up}. {_view_it(link)}',
        deep_link=link,
        affected=(ViewKey.TASKS, ViewKey.PROJECT, ViewKey.PROJECTS),
    )


# ---- 目标 ----


def create_goal(action: CreateGoal, ctx: ActionContext) -> ActionResult:
    d = action.goal_details
    title = (d.title or "").strip()
    if not title:
        return _invalid("To create a goal, I need at least a title.")

    goal = ctx.repository.create_goal(
        ctx.user_id,
        NewGoal(
            title=title,
            description=d.description,
            type=d.type,
            frequency=d.frequency,
            specific_days=list(d.specific_days) or None,
            target_quantity=d.target_quantity,
            target_period=d.target_period,
            target_value=d.target_value,
            unit=d.unit,
            icon=d.icon,
            color=d.color,
        ),
        tags=[(t.name, t.color) for t in d.tags],
    )
    link = goal_link(goal.slug)
    return ActionResult(
        message=f'Done! I\'ve created the goal "{goal.title}". {_view_it(link)}',
        deep_link=link,
        affected=(ViewKey.GOALS, ViewKey.GOAL),
    )


# ---- 知识库 ----


def _header_image(query: Optional[str], ctx: ActionContext) -> Optional[str]:
    if not query or ctx.image_search is None:
        return None
    try:
        return ctx.image_search.search(query)
    except Exception as e:
        # 头图是可选项，失败不影响文章创建
        logger.log(
            logging.WARNING,
            "header image lookup failed",
            extra={"extra": {"event": "image_search_failed", "trace_id": ctx.trace_id, "error": str(e)}},
        )
        return None


def create_article(action: CreateArticle, ctx: ActionContext) -> ActionResult:
    d = action.article_details
    title = (d.title or "").strip()
    if not title:
        return _invalid("I need a title to create an article.")

    header_image_url = _header_image(d.header_image_search_query, ctx)
    article, folder, folder_created = ctx.repository.create_article(
        ctx.user_id,
        title=title,
        content=d.content,
        folder_name=d.folder_name,
        header_image_url=header_image_url,
    )

    follow_up = ""
    if d.header_image_search_query and not header_image_url:
        follow_up = " but I couldn't find a header image for it"
    affected = (ViewKey.KB_ARTICLES, ViewKey.KB_ARTICLE)
    if folder_created:
        affected += (ViewKey.KB_FOLDERS,)
    link = article_link(article.slug)
    return ActionResult(
        message=(
            f'Done! I\'ve created the article "{article.title}" in the "{folder.name}" folder{follow_up}. '
            f"{_view_it(link)}"
        ),
        deep_link=link,
        affected=affected,
    )


def create_folder(action: CreateFolder, ctx: ActionContext) -> ActionResult:
    d = action.folder_details
    name = (d.name or "").strip()
    if not name:
        return _invalid("I need a name to create a folder.")

    folder, created = ctx.repository.ensure_folder(
        ctx.user_id,
        name,
        description=d.description,
        icon=d.icon,
        color=d.color,
        category=d.category,
    )
    link = folder_link(folder.slug)
    if not created:
        return ActionResult(
            message=f'You already have a folder named "{folder.name}". {_view_it(link)}',
            deep_link=link,
        )
    return ActionResult(
        message=f'Done! I\'ve created the folder "{folder.name}". {_view_it(link)}',
        deep_link=link,
        affected=(ViewKey.KB_FOLDERS,),
    )


# ---- 未实现 ----


def not_supported(action, ctx: ActionContext) -> ActionResult:
    return ActionResult(
        message=f"I can't perform that action yet ({action.kind.value} is not supported).",
        failure=FailureKind.NOT_SUPPORTED,
    )
