"""实体解析：把动作负载中的人类可读引用（姓名、邮箱、标题）映射为 ID。

只做大小写不敏感的精确匹配，不做模糊匹配；找不到时返回
resolved_id=None，而不是抛异常，由执行器决定如何提示用户。
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from assistant_core.domain.workspace import (
    ArticleRecord,
    ContextSnapshot,
    FolderRecord,
    GoalRecord,
    ProjectRecord,
    TaskRecord,
    UNCATEGORIZED_FOLDER,
    UserProfile,
)


@dataclass
class EntityReference:
    raw_text: str
    resolved_id: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.resolved_id is not None


def _key(text: Optional[str]) -> str:
    return " ".join((text or "").split()).lower()


class EntityResolver:
    """基于单次请求的上下文快照做解析；快照已按当前用户裁剪。"""

    def __init__(self, snapshot: ContextSnapshot):
        self._snapshot = snapshot

    # ---- 用户 ----

    def find_user(self, text: str) -> Optional[UserProfile]:
        key = _key(text)
        if not key:
            return None
        for u in self._snapshot.users:
            full = _key(f"{u.first_name or ''} {u.last_name or ''}")
            if (full and full == key) or _key(u.email) == key:
                return u
        return None

    def user(self, text: str) -> EntityReference:
        found = self.find_user(text)
        return EntityReference(raw_text=text, resolved_id=found.id if found else None)

    def users(self, names: Iterable[str]) -> Tuple[List[str], List[str]]:
        """批量解析，返回 (去重后的用户 ID, 未能解析的原始名称)。"""

        resolved: List[str] = []
        unresolved: List[str] = []
        for name in names or []:
            if not _key(name):
                continue
            ref = self.user(name)
            if ref.found:
                if ref.resolved_id not in resolved:
                    resolved.append(ref.resolved_id)
            else:
                unresolved.append(name)
        return resolved, unresolved

    # ---- 项目 / 任务 ----

    def find_project(self, name: str) -> Optional[ProjectRecord]:
        key = _key(name)
        if not key:
            return None
        return next((p for p in self._snapshot.projects if _key(p.name) == key), None)

    def project(self, name: str) -> EntityReference:
        found = self.find_project(name)
        return EntityReference(raw_text=name, resolved_id=found.id if found else None)

    def find_task(self, project: ProjectRecord, title: str) -> Optional[TaskRecord]:
        key = _key(title)
        return next((t for t in project.tasks if _key(t.title) == key), None) if key else None

    # ---- 目标 / 知识库 ----

    def find_goal(self, title: str) -> Optional[GoalRecord]:
        key = _key(title)
        return next((g for g in self._snapshot.goals if _key(g.title) == key), None) if key else None

    def find_article(self, title: str) -> Optional[ArticleRecord]:
        key = _key(title)
        return next((a for a in self._snapshot.articles if _key(a.title) == key), None) if key else None

    def find_folder(self, name: Optional[str]) -> Optional[FolderRecord]:
        """按名称查找当前用户的文件夹；名称为空时查找 "Uncategorized"。"""

        key = _key(name) or _key(UNCATEGORIZED_FOLDER)
        user_id = self._snapshot.user.id
        return next(
            (f for f in self._snapshot.folders if f.user_id == user_id and _key(f.name) == key),
            None,
        )

    def folder(self, name: Optional[str]) -> EntityReference:
        found = self.find_folder(name)
        return EntityReference(raw_text=name or UNCATEGORIZED_FOLDER, resolved_id=found.id if found else None)
