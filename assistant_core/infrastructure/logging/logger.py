import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from assistant_core.config.settings import settings

# 可能包含用户原文的结构化字段，脱敏时一并截断
_CONTENT_FIELDS = ("content", "message", "reply", "description")
_REDACT_LIMIT = 64


class AssistantLogFormatter(logging.Formatter):
    """每条记录一行 JSON。

    trace_id 与 user_id 总是出现在固定位置（缺省为 null），
    同一轮对话的日志可以按 trace_id 串起来。
    """

    def __init__(self, redact: Optional[bool] = None):
        super().__init__()
        self._redact = redact

    @property
    def redact(self) -> bool:
        return settings.log_redact_content if self._redact is None else self._redact

    def format(self, record: logging.LogRecord) -> str:
        extra = getattr(record, "extra", None)
        fields: Dict[str, Any] = dict(extra) if isinstance(extra, dict) else {}
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "trace_id": fields.pop("trace_id", None),
            "user_id": fields.pop("user_id", None),
            "msg": record.getMessage(),
        }
        payload.update(fields)
        if self.redact:
            for key in ("msg",) + _CONTENT_FIELDS:
                if isinstance(payload.get(key), str):
                    payload[key] = payload[key][:_REDACT_LIMIT]
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("assistant_core")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "assistant.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(AssistantLogFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
