"""协议编译：生成发给模型的系统指令与消息历史。

系统指令包含三部分：
(a) 全部动作类型及其字段语法；
(b) 元规则：任务也直接输出 JSON，由执行器生成提议并等待用户确认；危险的歧义请求先澄清；
(c) 当前会话的精简上下文快照。
"""

import json
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from assistant_core.actions.definitions import ACTION_DEFS, ActionDef
from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationMessage
from assistant_core.domain.models import ChatMessage
from assistant_core.domain.workspace import ContextSnapshot
from assistant_core.prompts import load_system_prompt


def _dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def render_action_grammar(defs: Sequence[ActionDef] = ACTION_DEFS) -> str:
    blocks: List[str] = []
    for i, d in enumerate(defs, start=1):
        lines = [f"{i}. {d.kind.value}:", d.example]
        required = [f.name for f in d.fields if f.required]
        if required:
            lines.append(f"- Required: {', '.join(required)}.")
        lines.extend(f"- {note}" for note in d.notes)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class ProtocolCompiler:
    def __init__(self, assistant_name: Optional[str] = None, locale: str = "en"):
        self._assistant_name = assistant_name or settings.assistant_name
        self._template = load_system_prompt("action-assistant", locale)

    def compile(self, snapshot: ContextSnapshot, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        return self._template.substitute(
            assistant_name=self._assistant_name,
            user_name=snapshot.user.display_name,
            now=now.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
            action_grammar=render_action_grammar(),
            service_catalog=_dumps(snapshot.service_catalog),
            icon_catalog=_dumps(snapshot.icon_catalog),
            user_list=_dumps(snapshot.user_list),
            projects=_dumps(snapshot.summarized_projects),
            goals=_dumps(snapshot.summarized_goals),
            articles=_dumps(snapshot.summarized_articles),
            folders=_dumps(snapshot.summarized_folders),
        )


def attachment_note(file_name: str) -> str:
    return (
        f'(The user has attached a file named "{file_name}", but I cannot view its content. '
        "I should let them know if the content matters for the request.)"
    )


def build_model_history(
    history: Sequence[ConversationMessage],
    message: str,
    attachment_name: Optional[str] = None,
    window: Optional[int] = None,
) -> List[ChatMessage]:
    """会话历史 -> 模型消息列表。

    只保留最近 window 条历史，末尾追加本轮用户消息（含附件说明）。
    """

    limit = settings.max_context_messages if window is None else window
    recent = list(history)[-limit:] if limit > 0 else []
    msgs = [
        ChatMessage(role="assistant" if m.sender == "assistant" else "user", content=m.content)
        for m in recent
    ]
    content = message
    if attachment_name:
        content = f"{message}\n\n{attachment_note(attachment_name)}" if message else attachment_note(attachment_name)
    msgs.append(ChatMessage(role="user", content=content))
    return msgs
