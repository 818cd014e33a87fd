"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 模板。
模板使用 string.Template 的 $name 占位符，避免与 JSON 花括号冲突。
"""

from pathlib import Path
from string import Template


PROMPTS_DIR = Path(__file__).resolve().parent

_PROMPT_FILES = {
    "action-assistant": "action_assistant_system.md",
}


def load_system_prompt(agent_type: str = "action-assistant", locale: str = "en") -> Template:
    """根据助手类型和语言加载系统提示词模板。"""

    try:
        fname = PROMPTS_DIR / locale / _PROMPT_FILES[agent_type]
    except KeyError:
        raise KeyError(f"Unknown prompt type: {agent_type!r}")
    return Template(fname.read_text(encoding="utf-8"))
