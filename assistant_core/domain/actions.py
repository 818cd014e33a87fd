"""动作语法与执行结果模型。

模型可以输出的结构化动作是一个封闭的带标签联合类型：
`action` 字段取值于 ActionKind，各分支的负载只包含人类可读的引用
（名称、标题），不包含已解析的 ID。

负载使用 pydantic 校验，字段大多可选：缺失字段由执行器给出友好提示，
类型错误（如 budget 不是数字）则视为无法解析的动作。
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ActionKind(str, Enum):
    CREATE_PROJECT = "CREATE_PROJECT"
    UPDATE_PROJECT = "UPDATE_PROJECT"
    CREATE_TASK = "CREATE_TASK"
    ASSIGN_TASK = "ASSIGN_TASK"
    UNASSIGN_TASK = "UNASSIGN_TASK"
    CREATE_GOAL = "CREATE_GOAL"
    UPDATE_GOAL = "UPDATE_GOAL"
    CREATE_ARTICLE = "CREATE_ARTICLE"
    UPDATE_ARTICLE = "UPDATE_ARTICLE"
    DELETE_ARTICLE = "DELETE_ARTICLE"
    CREATE_FOLDER = "CREATE_FOLDER"


ACTION_KINDS = frozenset(kind.value for kind in ActionKind)

# 需要先提议、经用户确认后才执行的动作
CONFIRMATION_REQUIRED = frozenset({ActionKind.CREATE_TASK})


class ViewKey:
    """执行结果中声明的受影响视图（前端缓存 key）。"""

    PROJECTS = "projects"
    PROJECT = "project"
    TASKS = "tasks"
    GOALS = "goals"
    GOAL = "goal"
    KB_ARTICLES = "kb_articles"
    KB_ARTICLE = "kb_article"
    KB_FOLDERS = "kb_folders"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _Action(_Payload):
    @property
    def kind(self) -> ActionKind:
        return ActionKind(self.action)  # type: ignore[attr-defined]


# ---- 负载明细 ----


class ProjectDetails(_Payload):
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    venue: Optional[str] = None
    budget: Optional[float] = None
    services: List[str] = Field(default_factory=list)
    members: List[str] = Field(default_factory=list)


class GoalTag(_Payload):
    name: str
    color: Optional[str] = None


class GoalDetails(_Payload):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    frequency: Optional[str] = None
    specific_days: List[str] = Field(default_factory=list)
    target_quantity: Optional[float] = None
    target_period: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    tags: List[GoalTag] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        # 模型偶尔只给出标签名
        if isinstance(value, list):
            return [{"name": v} if isinstance(v, str) else v for v in value]
        return value


class ArticleDetails(_Payload):
    title: Optional[str] = None
    content: Optional[str] = None
    folder_name: Optional[str] = None
    header_image_search_query: Optional[str] = None


class FolderDetails(_Payload):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    category: Optional[str] = None


# ---- 动作分支 ----


class CreateProject(_Action):
    action: Literal["CREATE_PROJECT"]
    project_details: ProjectDetails = Field(default_factory=ProjectDetails)


class UpdateProject(_Action):
    action: Literal["UPDATE_PROJECT"]
    project_name: Optional[str] = None
    updates: Dict[str, Any] = Field(default_factory=dict)


class CreateTask(_Action):
    action: Literal["CREATE_TASK"]
    project_name: Optional[str] = None
    task_title: Optional[str] = None
    assignees: List[str] = Field(default_factory=list)


class AssignTask(_Action):
    action: Literal["ASSIGN_TASK"]
    project_name: Optional[str] = None
    task_title: Optional[str] = None
    assignees: List[str] = Field(default_factory=list)


class UnassignTask(_Action):
    action: Literal["UNASSIGN_TASK"]
    project_name: Optional[str] = None
    task_title: Optional[str] = None
    assignees: List[str] = Field(default_factory=list)


class CreateGoal(_Action):
    action: Literal["CREATE_GOAL"]
    goal_details: GoalDetails = Field(default_factory=GoalDetails)


class UpdateGoal(_Action):
    action: Literal["UPDATE_GOAL"]
    goal_title: Optional[str] = None
    updates: Dict[str, Any] = Field(default_factory=dict)


class CreateArticle(_Action):
    action: Literal["CREATE_ARTICLE"]
    article_details: ArticleDetails = Field(default_factory=ArticleDetails)


class UpdateArticle(_Action):
    action: Literal["UPDATE_ARTICLE"]
    article_title: Optional[str] = None
    updates: Dict[str, Any] = Field(default_factory=dict)


class DeleteArticle(_Action):
    action: Literal["DELETE_ARTICLE"]
    article_title: Optional[str] = None


class CreateFolder(_Action):
    action: Literal["CREATE_FOLDER"]
    folder_details: FolderDetails = Field(default_factory=FolderDetails)


ActionRequest = Annotated[
    Union[
        CreateProject,
        UpdateProject,
        CreateTask,
        AssignTask,
        UnassignTask,
        CreateGoal,
        UpdateGoal,
        CreateArticle,
        UpdateArticle,
        DeleteArticle,
        CreateFolder,
    ],
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter = TypeAdapter(ActionRequest)


def parse_action(data: Dict[str, Any]) -> ActionRequest:
    """把模型输出的 JSON 对象解析为具体的动作分支。

    Raises:
        pydantic.ValidationError: action 未知或负载字段类型不符。
    """

    return _ACTION_ADAPTER.validate_python(data)


def action_to_payload(action: ActionRequest) -> Dict[str, Any]:
    """序列化为可落盘的 JSON 对象（待确认提议使用）。"""

    return action.model_dump(mode="json", exclude_none=True)


class FailureKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    INVALID_REQUEST = "INVALID_REQUEST"
    EXECUTION_ERROR = "EXECUTION_ERROR"


@dataclass
class ActionResult:
    """一次动作执行的结果。

    - message: 展示给用户的文本（成功时包含 markdown 深链接）。
    - deep_link: 新建/更新资源的应用内路径。
    - affected: 受影响的视图 key，调用方据此精确刷新缓存。
    - failure: 失败类型；None 表示成功。
    - pending_action: 需要用户确认时，等待确认的动作（此时未发生任何写入）。
    """

    message: str
    deep_link: Optional[str] = None
    affected: Tuple[str, ...] = ()
    failure: Optional[FailureKind] = None
    pending_action: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return self.failure is None
