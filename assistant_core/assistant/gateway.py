"""LLM 网关：一次阻塞调用 (系统指令, 消息历史) -> 原始文本。

不做流式、不做重试；失败按 ProviderUnavailable / ProviderRejected 分类抛出，
由调用方转换为会话消息。
"""

import logging
import time
from typing import List, Optional

from assistant_core.config.settings import settings as default_settings
from assistant_core.domain.exceptions import ProviderError, ProviderRejected
from assistant_core.domain.models import ChatMessage, ChatRequest
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.providers import ProviderClient, create_provider


class LLMGateway:
    def __init__(self, provider: Optional[ProviderClient] = None, settings=None):
        self._settings = settings or default_settings
        self._provider = provider

    def ensure_configured(self) -> ProviderClient:
        """确定 Provider；凭据缺失时抛出 ConfigurationError（不发起任何请求）。"""

        if self._provider is None:
            self._provider = create_provider(None, self._settings)
        return self._provider

    def complete(self, system: str, history: List[ChatMessage], trace_id: Optional[str] = None) -> str:
        provider = self.ensure_configured()
        req = ChatRequest(
            provider=provider.name,
            model=self._settings.default_model,
            system=system,
            messages=history,
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
        )
        log_ctx = {"trace_id": trace_id, "provider": provider.name, "model": req.model}
        started = time.perf_counter()
        logger.log(
            logging.INFO,
            "llm_call_start",
            extra={"extra": {"event": "llm_call_start", **log_ctx, "messages": len(history)}},
        )
        try:
            result = provider.chat(req)
        except ProviderError as e:
            logger.log(
                logging.ERROR,
                "llm_call_failed",
                extra={"extra": {"event": "llm_call_failed", **log_ctx, "code": e.code, "error": e.message}},
            )
            raise
        text = (result.text or "").strip()
        logger.log(
            logging.INFO,
            "llm_call_end",
            extra={
                "extra": {
                    "event": "llm_call_end",
                    **log_ctx,
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                    "total_tokens": result.usage.total_tokens if result.usage else None,
                }
            },
        )
        if not text:
            raise ProviderRejected(code="EMPTY_RESPONSE", message="The model returned an empty response.", provider=provider.name)
        return text
