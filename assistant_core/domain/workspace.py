"""工作区实体与上下文快照。

这里的记录类型是数据库行的只读投影，供上下文构建、实体解析与提示词使用；
写入通过 WorkspaceRepository 完成，不直接修改这些对象。
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


# 可选服务目录（创建项目时模型据此推断 services）
SERVICE_CATALOG: List[str] = [
    "3D Graphic Design", "Accommodation", "Award Ceremony", "Branding", "Content Creation",
    "Digital Marketing", "Entertainment", "Event Decoration", "Event Equipment",
    "Event Gamification", "Exhibition Booth", "Food & Beverage", "Keyvisual Graphic Design",
    "LED Display", "Lighting System", "Logistics", "Man Power", "Merchandise",
    "Motiongraphic Video", "Multimedia System", "Payment Advance", "Photo Documentation",
    "Plaque & Trophy", "Prints", "Professional Security",
    "Professional video production for commercial ads", "Show Management", "Slido",
    "Sound System", "Stage Production", "Talent", "Ticket Management System", "Transport",
    "Venue", "Video Documentation", "VIP Services", "Virtual Events", "Awards System",
    "Brand Ambassadors", "Electricity & Genset", "Event Consultation", "Workshop",
]

# 目标/文件夹可用图标名
ICON_CATALOG: List[str] = [
    "Target", "Flag", "BookOpen", "Dumbbell", "TrendingUp", "Star", "Heart", "Rocket",
    "DollarSign", "FileText", "ImageIcon", "Award", "BarChart", "Calendar", "CheckCircle",
    "Users", "Activity", "Anchor", "Aperture", "Bike", "Briefcase", "Brush", "Camera", "Car",
    "ClipboardCheck", "Cloud", "Code", "Coffee", "Compass", "Cpu", "CreditCard", "Crown",
    "Database", "Diamond", "Feather", "Film", "Flame", "Flower", "Gift", "Globe",
    "GraduationCap", "Headphones", "Home", "Key", "Laptop", "Leaf", "Lightbulb", "Link", "Map",
    "Medal", "Mic", "Moon", "MousePointer", "Music", "Paintbrush", "Palette", "PenTool", "Phone",
    "PieChart", "Plane", "Puzzle", "Save", "Scale", "Scissors", "Settings", "Shield",
    "ShoppingBag", "Smile", "Speaker", "Sun", "Sunrise", "Sunset", "Sword", "Tag", "Trophy",
    "Truck", "Umbrella", "Video", "Wallet", "Watch", "Wind", "Wrench", "Zap",
]

UNCATEGORIZED_FOLDER = "Uncategorized"

_DESCRIPTION_PREVIEW = 100


@dataclass
class UserProfile:
    id: str
    first_name: Optional[str]
    last_name: Optional[str]
    email: str

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.email


@dataclass
class TagRecord:
    id: str
    name: str
    color: Optional[str] = None


@dataclass
class TaskRecord:
    id: str
    project_id: str
    title: str
    completed: bool = False
    assignee_ids: List[str] = field(default_factory=list)


@dataclass
class ProjectRecord:
    id: str
    name: str
    slug: str
    created_by: str
    status: str = "Requested"
    description: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    venue: Optional[str] = None
    budget: Optional[float] = None
    services: List[str] = field(default_factory=list)
    member_ids: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    tasks: List[TaskRecord] = field(default_factory=list)


@dataclass
class GoalRecord:
    id: str
    title: str
    slug: str
    user_id: str
    type: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class FolderRecord:
    id: str
    name: str
    slug: str
    user_id: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    category: Optional[str] = None


@dataclass
class ArticleRecord:
    id: str
    title: str
    slug: str
    user_id: str
    folder_id: Optional[str] = None
    header_image_url: Optional[str] = None


@dataclass
class ContextSnapshot:
    """一次请求的工作区快照（只读，不持久化，每次请求重建）。

    完整视图供解析器使用；summarized_* / user_list 是喂给模型的精简视图，
    只从完整视图派生，因此不会出现完整视图中不存在的字段。
    """

    user: UserProfile
    projects: List[ProjectRecord] = field(default_factory=list)
    users: List[UserProfile] = field(default_factory=list)
    goals: List[GoalRecord] = field(default_factory=list)
    tags: List[TagRecord] = field(default_factory=list)
    articles: List[ArticleRecord] = field(default_factory=list)
    folders: List[FolderRecord] = field(default_factory=list)
    service_catalog: List[str] = field(default_factory=lambda: list(SERVICE_CATALOG))
    icon_catalog: List[str] = field(default_factory=lambda: list(ICON_CATALOG))

    def _user_names(self) -> Dict[str, str]:
        return {u.id: u.display_name for u in self.users}

    @property
    def summarized_projects(self) -> List[Dict[str, Any]]:
        names = self._user_names()
        items: List[Dict[str, Any]] = []
        for p in self.projects:
            desc = p.description or ""
            if len(desc) > _DESCRIPTION_PREVIEW:
                desc = desc[:_DESCRIPTION_PREVIEW] + "..."
            items.append({
                "name": p.name,
                "status": p.status,
                "description": desc,
                "tags": list(p.tags),
                "tasks": [
                    {
                        "title": t.title,
                        "completed": t.completed,
                        "assignedTo": [names[a] for a in t.assignee_ids if a in names],
                    }
                    for t in p.tasks
                ],
            })
        return items

    @property
    def summarized_goals(self) -> List[Dict[str, Any]]:
        return [{"title": g.title, "type": g.type, "tags": list(g.tags)} for g in self.goals]

    @property
    def summarized_articles(self) -> List[Dict[str, Any]]:
        folder_names = {f.id: f.name for f in self.folders}
        return [
            {"title": a.title, "folder": folder_names.get(a.folder_id) if a.folder_id else None}
            for a in self.articles
        ]

    @property
    def summarized_folders(self) -> List[str]:
        return [f.name for f in self.folders]

    @property
    def user_list(self) -> List[Dict[str, str]]:
        return [{"id": u.id, "name": u.display_name} for u in self.users]
