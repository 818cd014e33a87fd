"""响应分类：模型原始文本 -> Answer | Action | Unsupported | Malformed。

解析规则：
- 优先取 ```json 代码块，否则取文本中第一个 '{' 到最后一个 '}' 之间的内容；
- 能解析为 JSON 对象且带有已知 action -> Action；
- JSON 对象带有未知 action -> Unsupported（固定提示，绝不把原始 JSON 回给用户）；
- 已知 action 但负载类型不符 -> Malformed（友好提示）；
- 其余情况一律视为自然语言回答（宽松回退，不抛异常）。
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from assistant_core.domain.actions import ACTION_KINDS, ActionRequest, parse_action
from assistant_core.infrastructure.logging.logger import logger

_JSON_PATTERN = re.compile(r"```json\s*\n?([\s\S]*?)\n?```|(\{[\s\S]*\})")

UNSUPPORTED_MESSAGE = "I can't perform that action yet."
MALFORMED_MESSAGE = (
    "I understood that you want me to do something, but I couldn't make sense of the details. "
    "Could you rephrase the request?"
)


@dataclass
class Answer:
    text: str


@dataclass
class Action:
    request: ActionRequest
    raw: Dict[str, Any]


@dataclass
class Unsupported:
    action_name: str
    text: str = UNSUPPORTED_MESSAGE


@dataclass
class Malformed:
    action_name: str
    error: str
    text: str = MALFORMED_MESSAGE


Classification = Union[Answer, Action, Unsupported, Malformed]


def _extract_json_object(raw_text: str) -> Optional[Dict[str, Any]]:
    text = raw_text.strip()
    candidates = [text]
    match = _JSON_PATTERN.search(text)
    if match:
        candidates.append((match.group(1) or match.group(2) or "").strip())
    for candidate in candidates:
        if not candidate.startswith("{"):
            continue
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def classify(raw_text: str, trace_id: Optional[str] = None) -> Classification:
    data = _extract_json_object(raw_text or "")
    if data is None or not isinstance(data.get("action"), str):
        return Answer(text=(raw_text or "").strip())

    action_name = data["action"]
    if action_name not in ACTION_KINDS:
        logger.log(
            logging.WARNING,
            "unsupported action",
            extra={"extra": {"event": "classify_unsupported", "trace_id": trace_id, "action": action_name}},
        )
        return Unsupported(action_name=action_name)

    try:
        request = parse_action(data)
    except ValidationError as e:
        logger.log(
            logging.WARNING,
            "malformed action payload",
            extra={
                "extra": {
                    "event": "classify_malformed",
                    "trace_id": trace_id,
                    "action": action_name,
                    "error": str(e),
                }
            },
        )
        return Malformed(action_name=action_name, error=str(e))
    return Action(request=request, raw=data)
