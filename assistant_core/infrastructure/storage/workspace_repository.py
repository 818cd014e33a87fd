"""工作区仓储：上下文构建的只读查询 + 执行器的事务性写入。

每个写方法在一个数据库事务内完成全部写入（如 项目+服务+成员），
失败时整体回滚并抛出 ExecutionError，不自动重试。
"""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ExecutionError
from assistant_core.domain.workspace import (
    ArticleRecord,
    FolderRecord,
    GoalRecord,
    ProjectRecord,
    TagRecord,
    TaskRecord,
    UNCATEGORIZED_FOLDER,
    UserProfile,
)
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.workspace_db import (
    Goal,
    GoalTag,
    KbArticle,
    KbFolder,
    Profile,
    Project,
    ProjectMember,
    ProjectService,
    ProjectTag,
    Tag,
    Task,
    TaskAssignee,
    WRITE_TRANSACTION_OPTION,
    create_session_factory,
    create_workspace_engine,
    name_key,
    slugify,
)


@dataclass
class NewProject:
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    venue: Optional[str] = None
    budget: Optional[float] = None


@dataclass
class NewGoal:
    title: str
    description: Optional[str] = None
    type: Optional[str] = None
    frequency: Optional[str] = None
    specific_days: Optional[List[str]] = None
    target_quantity: Optional[float] = None
    target_period: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None


def _unique_slug(session: Session, column, base: str) -> str:
    """在 column 上生成全局唯一 slug：base, base-2, base-3 ..."""
    taken = set(session.scalars(select(column).where(or_(column == base, column.like(f"{base}-%")))))
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _to_profile(row: Profile) -> UserProfile:
    return UserProfile(id=row.id, first_name=row.first_name, last_name=row.last_name, email=row.email)


def _to_folder(row: KbFolder) -> FolderRecord:
    return FolderRecord(
        id=row.id,
        name=row.name,
        slug=row.slug,
        user_id=row.user_id,
        description=row.description,
        icon=row.icon,
        color=row.color,
        category=row.category,
    )


def _to_article(row: KbArticle) -> ArticleRecord:
    return ArticleRecord(
        id=row.id,
        title=row.title,
        slug=row.slug,
        user_id=row.user_id,
        folder_id=row.folder_id,
        header_image_url=row.header_image_url,
    )


class WorkspaceRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str) -> "WorkspaceRepository":
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
            Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        return cls(create_session_factory(create_workspace_engine(url)))

    @classmethod
    def from_settings(cls) -> "WorkspaceRepository":
        return cls.from_url(settings.database_url)

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        with self._session_factory() as session:
            row = session.get(Profile, user_id)
            return _to_profile(row) if row else None

    def list_users(self) -> List[UserProfile]:
        with self._session_factory() as session:
            rows = session.scalars(select(Profile).order_by(Profile.email))
            return [_to_profile(r) for r in rows]

    def list_tags(self) -> List[TagRecord]:
        with self._session_factory() as session:
            rows = session.scalars(select(Tag).order_by(Tag.name))
            return [TagRecord(id=r.id, name=r.name, color=r.color) for r in rows]

    def list_projects_for_user(self, user_id: str, limit: int) -> List[ProjectRecord]:
        """用户创建或参与的项目（含服务、成员、标签、任务），按创建时间倒序。"""
        with self._session_factory() as session:
            member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
            projects = list(
                session.scalars(
                    select(Project)
                    .where(or_(Project.created_by == user_id, Project.id.in_(member_of)))
                    .order_by(Project.created_at.desc())
                    .limit(limit)
                )
            )
            ids = [p.id for p in projects]
            if not ids:
                return []

            services: Dict[str, List[str]] = {}
            for ps in session.scalars(select(ProjectService).where(ProjectService.project_id.in_(ids))):
                services.setdefault(ps.project_id, []).append(ps.service_title)
            members: Dict[str, List[str]] = {}
            for pm in session.scalars(select(ProjectMember).where(ProjectMember.project_id.in_(ids))):
                members.setdefault(pm.project_id, []).append(pm.user_id)
            tags: Dict[str, List[str]] = {}
            for project_id, tag_name in session.execute(
                select(ProjectTag.project_id, Tag.name)
                .join(Tag, Tag.id == ProjectTag.tag_id)
                .where(ProjectTag.project_id.in_(ids))
            ):
                tags.setdefault(project_id, []).append(tag_name)

            task_rows = list(
                session.scalars(select(Task).where(Task.project_id.in_(ids)).order_by(Task.created_at))
            )
            assignees: Dict[str, List[str]] = {}
            if task_rows:
                for ta in session.scalars(
                    select(TaskAssignee).where(TaskAssignee.task_id.in_([t.id for t in task_rows]))
                ):
                    assignees.setdefault(ta.task_id, []).append(ta.user_id)
            tasks: Dict[str, List[TaskRecord]] = {}
            for t in task_rows:
                tasks.setdefault(t.project_id, []).append(
                    TaskRecord(
                        id=t.id,
                        project_id=t.project_id,
                        title=t.title,
                        completed=t.completed,
                        assignee_ids=assignees.get(t.id, []),
                    )
                )

            return [
                ProjectRecord(
                    id=p.id,
                    name=p.name,
                    slug=p.slug,
                    created_by=p.created_by,
                    status=p.status,
                    description=p.description,
                    start_date=p.start_date,
                    due_date=p.due_date,
                    venue=p.venue,
                    budget=p.budget,
                    services=services.get(p.id, []),
                    member_ids=members.get(p.id, []),
                    tags=tags.get(p.id, []),
                    tasks=tasks.get(p.id, []),
                )
                for p in projects
            ]

    def list_goals(self, user_id: str) -> List[GoalRecord]:
        with self._session_factory() as session:
            goals = list(session.scalars(select(Goal).where(Goal.user_id == user_id).order_by(Goal.created_at)))
            if not goals:
                return []
            tags: Dict[str, List[str]] = {}
            for goal_id, tag_name in session.execute(
                select(GoalTag.goal_id, Tag.name)
                .join(Tag, Tag.id == GoalTag.tag_id)
                .where(GoalTag.goal_id.in_([g.id for g in goals]))
            ):
                tags.setdefault(goal_id, []).append(tag_name)
            return [
                GoalRecord(
                    id=g.id,
                    title=g.title,
                    slug=g.slug,
                    user_id=g.user_id,
                    type=g.type,
                    description=g.description,
                    tags=tags.get(g.id, []),
                )
                for g in goals
            ]

    def list_articles(self, user_id: str) -> List[ArticleRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(KbArticle).where(KbArticle.user_id == user_id).order_by(KbArticle.created_at)
            )
            return [_to_article(r) for r in rows]

    def list_folders(self, user_id: str) -> List[FolderRecord]:
        with self._session_factory() as session:
            rows = session.scalars(select(KbFolder).where(KbFolder.user_id == user_id).order_by(KbFolder.name))
            return [_to_folder(r) for r in rows]

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def create_profile(
        self, email: str, first_name: Optional[str] = None, last_name: Optional[str] = None, id: Optional[str] = None
    ) -> UserProfile:
        with self._write("profile") as session:
            row = Profile(email=email, first_name=first_name, last_name=last_name)
            if id:
                row.id = id
            session.add(row)
            session.flush()
            return _to_profile(row)

    def create_project(
        self,
        owner_id: str,
        project: NewProject,
        services: Sequence[str] = (),
        member_ids: Sequence[str] = (),
    ) -> ProjectRecord:
        """插入项目并挂接服务、成员；同名项目允许重复，slug 自动加后缀。"""
        with self._write("project") as session:
            slug = _unique_slug(session, Project.slug, slugify(project.name))
            row = Project(
                name=project.name,
                slug=slug,
                description=project.description,
                start_date=project.start_date,
                due_date=project.due_date,
                venue=project.venue,
                budget=project.budget,
                created_by=owner_id,
            )
            session.add(row)
            session.flush()
            for title in services:
                session.add(ProjectService(project_id=row.id, service_title=title))
            unique_members = [m for m in dict.fromkeys(member_ids) if m != owner_id]
            for user_id in unique_members:
                session.add(ProjectMember(project_id=row.id, user_id=user_id, role="member"))
            session.flush()
            return ProjectRecord(
                id=row.id,
                name=row.name,
                slug=row.slug,
                created_by=row.created_by,
                status=row.status,
                description=row.description,
                start_date=row.start_date,
                due_date=row.due_date,
                venue=row.venue,
                budget=row.budget,
                services=list(services),
                member_ids=unique_members,
            )

    def create_task(
        self, project_id: str, title: str, created_by: Optional[str], assignee_ids: Sequence[str] = ()
    ) -> TaskRecord:
        with self._write("task") as session:
            row = Task(project_id=project_id, title=title, created_by=created_by)
            session.add(row)
            session.flush()
            unique_assignees = list(dict.fromkeys(assignee_ids))
            for user_id in unique_assignees:
                session.add(TaskAssignee(task_id=row.id, user_id=user_id))
            session.flush()
            return TaskRecord(
                id=row.id, project_id=project_id, title=row.title, completed=False, assignee_ids=unique_assignees
            )

    def create_goal(
        self, user_id: str, goal: NewGoal, tags: Iterable[Tuple[str, Optional[str]]] = ()
    ) -> GoalRecord:
        """目标与标签在同一事务内创建：已有同名标签复用，否则新建。"""
        with self._write("goal") as session:
            row = Goal(
                user_id=user_id,
                title=goal.title,
                slug=_unique_slug(session, Goal.slug, slugify(goal.title)),
                description=goal.description,
                type=goal.type,
                frequency=goal.frequency,
                specific_days=goal.specific_days,
                target_quantity=goal.target_quantity,
                target_period=goal.target_period,
                target_value=goal.target_value,
                unit=goal.unit,
                icon=goal.icon,
                color=goal.color,
            )
            session.add(row)
            session.flush()
            tag_names: List[str] = []
            linked = set()
            for name, color in tags:
                key = name_key(name)
                if not key or key in linked:
                    continue
                tag = session.scalars(select(Tag).where(Tag.name_key == key)).first()
                if tag is None:
                    tag = Tag(name=name.strip(), name_key=key, color=color)
                    session.add(tag)
                    session.flush()
                session.add(GoalTag(goal_id=row.id, tag_id=tag.id))
                linked.add(key)
                tag_names.append(tag.name)
            session.flush()
            return GoalRecord(
                id=row.id,
                title=row.title,
                slug=row.slug,
                user_id=row.user_id,
                type=row.type,
                description=row.description,
                tags=tag_names,
            )

    def ensure_folder(
        self,
        user_id: str,
        name: Optional[str],
        description: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Tuple[FolderRecord, bool]:
        """按 (所有者, 名称) 查找或创建文件夹，返回 (文件夹, 是否新建)。

        名称为空时使用 "Uncategorized"。并发创建同名文件夹时，
        唯一约束冲突后重新查询已存在的那一行。
        """
        with self._write("folder") as session:
            row, created = self._ensure_folder(session, user_id, name, description, icon, color, category)
            return _to_folder(row), created

    def create_article(
        self,
        user_id: str,
        title: str,
        content: Optional[str],
        folder_name: Optional[str],
        header_image_url: Optional[str] = None,
    ) -> Tuple[ArticleRecord, FolderRecord, bool]:
        """在同一事务内解析/创建文件夹并插入文章，返回 (文章, 文件夹, 文件夹是否新建)。"""
        with self._write("article") as session:
            folder, created = self._ensure_folder(session, user_id, folder_name)
            row = KbArticle(
                user_id=user_id,
                folder_id=folder.id,
                title=title,
                slug=_unique_slug(session, KbArticle.slug, slugify(title)),
                content={"html": content or ""},
                header_image_url=header_image_url,
            )
            session.add(row)
            session.flush()
            return _to_article(row), _to_folder(folder), created

    # ------------------------------------------------------------------

    def _ensure_folder(
        self,
        session: Session,
        user_id: str,
        name: Optional[str],
        description: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Tuple[KbFolder, bool]:
        display = " ".join((name or "").split()) or UNCATEGORIZED_FOLDER
        key = name_key(display)
        existing = self._find_folder(session, user_id, key)
        if existing is not None:
            return existing, False
        try:
            with session.begin_nested():
                row = KbFolder(
                    user_id=user_id,
                    name=display,
                    name_key=key,
                    slug=_unique_slug(session, KbFolder.slug, slugify(display)),
                    description=description,
                    icon=icon,
                    color=color,
                    category=category,
                )
                session.add(row)
                session.flush()
            return row, True
        except IntegrityError:
            logger.log(
                logging.WARNING,
                "folder insert raced, reusing existing row",
                extra={"extra": {"event": "folder_insert_race", "user_id": user_id, "folder": display}},
            )
            existing = self._find_folder(session, user_id, key)
            if existing is None:
                raise
            return existing, False

    def _find_folder(self, session: Session, user_id: str, key: str) -> Optional[KbFolder]:
        stmt = select(KbFolder).where(KbFolder.user_id == user_id, KbFolder.name_key == key)
        return session.scalars(stmt).first()

    def _write(self, entity: str) -> "_WriteTransaction":
        return _WriteTransaction(self._session_factory, entity)

    def count(self, model) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(model)) or 0


class _WriteTransaction:
    """单个写动作的事务上下文：成功提交，异常回滚并转换为 ExecutionError。"""

    def __init__(self, session_factory: sessionmaker, entity: str):
        self._session_factory = session_factory
        self._entity = entity
        self._session: Optional[Session] = None

    def __enter__(self) -> Session:
        session = self._session_factory()
        try:
            # 首次取连接即开启事务，执行选项在 BEGIN 之前生效
            session.connection(execution_options={WRITE_TRANSACTION_OPTION: True})
        except SQLAlchemyError as e:
            session.close()
            raise self._error(e) from e
        self._session = session
        return session

    def __exit__(self, exc_type, exc, tb) -> bool:
        session = self._session
        assert session is not None
        try:
            if exc_type is None:
                try:
                    session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    raise self._error(e) from e
                return False
            session.rollback()
            if isinstance(exc, SQLAlchemyError):
                raise self._error(exc) from exc
            return False
        finally:
            session.close()

    def _error(self, e: SQLAlchemyError) -> ExecutionError:
        return ExecutionError(
            code="DB_WRITE_ERROR",
            message=str(getattr(e, "orig", None) or e),
            entity=self._entity,
        )
