"""动作语法定义。

这些 dataclass 描述了"模型可以输出哪些动作 JSON"，用于：
- 由协议编译器渲染为提示词中的 AVAILABLE ACTIONS 段落（ActionDef / ActionField）。
- 每个 ActionKind 必须恰有一条定义，导入时校验。
"""

from dataclasses import dataclass, field
from typing import Dict, List

from assistant_core.domain.actions import ActionKind


@dataclass
class ActionField:
    """动作负载中的单个字段。"""

    name: str
    description: str
    required: bool = False


@dataclass
class ActionDef:
    """一个可供模型输出的动作定义。"""

    kind: ActionKind
    example: str
    fields: List[ActionField] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


ACTION_DEFS: List[ActionDef] = [
    ActionDef(
        kind=ActionKind.CREATE_PROJECT,
        example=(
            '{"action": "CREATE_PROJECT", "project_details": {"name": "<project name>", "description": "<desc>", '
            '"start_date": "YYYY-MM-DD", "due_date": "YYYY-MM-DD", "venue": "<venue>", "budget": 12345, '
            '"services": ["Service 1"], "members": ["User Name"]}}'
        ),
        fields=[
            ActionField("project_details.name", "Name of the new project.", required=True),
            ActionField("project_details.members", "Full names or emails of additional members."),
        ],
        notes=[
            "The current user will be the project owner. 'members' are additional people to add to the project.",
            "If the user does not list services, infer relevant ones from 'Available Services'.",
        ],
    ),
    ActionDef(
        kind=ActionKind.UPDATE_PROJECT,
        example='{"action": "UPDATE_PROJECT", "project_name": "<project name>", "updates": {"field": "value"}}',
        fields=[ActionField("project_name", "Exact name of an existing project.", required=True)],
    ),
    ActionDef(
        kind=ActionKind.CREATE_TASK,
        example=(
            '{"action": "CREATE_TASK", "project_name": "<project name>", "task_title": "<title of the new task>", '
            '"assignees": ["<optional user name>"]}'
        ),
        fields=[
            ActionField("project_name", "Exact name of an existing project.", required=True),
            ActionField("task_title", "Title of the new task.", required=True),
        ],
        notes=["Requires the two-step confirmation described in the rules."],
    ),
    ActionDef(
        kind=ActionKind.ASSIGN_TASK,
        example=(
            '{"action": "ASSIGN_TASK", "project_name": "<project name>", "task_title": "<title of the task>", '
            '"assignees": ["<user name 1>", "<user name 2>"]}'
        ),
    ),
    ActionDef(
        kind=ActionKind.UNASSIGN_TASK,
        example=(
            '{"action": "UNASSIGN_TASK", "project_name": "<project name>", "task_title": "<title of the task>", '
            '"assignees": ["<user name 1>"]}'
        ),
    ),
    ActionDef(
        kind=ActionKind.CREATE_GOAL,
        example=(
            '{"action": "CREATE_GOAL", "goal_details": {"title": "<goal title>", "description": "<desc>", '
            '"type": "<type>", "frequency": "<freq>", "specific_days": ["Mo", "We"], "target_quantity": 123, '
            '"target_period": "Weekly", "target_value": 123, "unit": "USD", "icon": "IconName", '
            '"color": "#RRGGBB", "tags": [{"name": "Tag1", "color": "#RRGGBB"}]}}'
        ),
        fields=[ActionField("goal_details.title", "Title of the goal.", required=True)],
        notes=[
            "If the user gives only a title, infer the other details.",
            "Choose 'type' from 'frequency', 'quantity' or 'value'.",
            "Pick 'icon' from 'Available Icons'. Create 2-3 relevant tags.",
        ],
    ),
    ActionDef(
        kind=ActionKind.UPDATE_GOAL,
        example='{"action": "UPDATE_GOAL", "goal_title": "<title of the goal to update>", "updates": {"field": "value"}}',
    ),
    ActionDef(
        kind=ActionKind.CREATE_ARTICLE,
        example=(
            '{"action": "CREATE_ARTICLE", "article_details": {"title": "<article title>", "content": "<HTML content>", '
            '"folder_name": "<optional folder name>", "header_image_search_query": "<optional image search query>"}}'
        ),
        fields=[ActionField("article_details.title", "Title of the article.", required=True)],
        notes=[
            "If folder_name is not provided, the article goes to the user's \"Uncategorized\" folder.",
            "A folder_name that does not exist yet is created for the user.",
            "If 'header_image_search_query' is provided, a matching photo becomes the header image.",
        ],
    ),
    ActionDef(
        kind=ActionKind.UPDATE_ARTICLE,
        example=(
            '{"action": "UPDATE_ARTICLE", "article_title": "<title of article to update>", '
            '"updates": {"title": "<new title>", "content": "<new HTML content>"}}'
        ),
    ),
    ActionDef(
        kind=ActionKind.DELETE_ARTICLE,
        example='{"action": "DELETE_ARTICLE", "article_title": "<title of article to delete>"}',
        notes=["Deletion is dangerous: ask for clarification when the title is ambiguous."],
    ),
    ActionDef(
        kind=ActionKind.CREATE_FOLDER,
        example=(
            '{"action": "CREATE_FOLDER", "folder_details": {"name": "<folder name>", "description": "<desc>", '
            '"icon": "IconName", "color": "#RRGGBB", "category": "<category>"}}'
        ),
        fields=[ActionField("folder_details.name", "Name of the folder.", required=True)],
    ),
]

ACTION_DEF_BY_KIND: Dict[ActionKind, ActionDef] = {d.kind: d for d in ACTION_DEFS}

_missing = set(ActionKind) - set(ACTION_DEF_BY_KIND)
if _missing or len(ACTION_DEF_BY_KIND) != len(ACTION_DEFS):
    raise RuntimeError(f"action grammar is not exhaustive: missing {sorted(k.value for k in _missing)}")
