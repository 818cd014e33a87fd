"""Anthropic Provider 适配器（Messages API）。

与 OpenAI 的差异：
- system 指令放在顶层 `system` 字段，而不是消息列表里。
- messages 必须以 user 开头且 user/assistant 交替，这里做一次规整。
- 响应文本在 `content[*].text`。
"""

from typing import Any, Dict, List

import httpx

from assistant_core.domain.models import ChatRequest, ChatResult, ChatMessage, ChatChoice, ChatUsage
from assistant_core.domain.exceptions import ConfigurationError, NetworkError, ProviderUnavailable
from assistant_core.providers.base import raise_for_provider_status
from assistant_core.providers.registry import ANTHROPIC_CONFIG, ModelConfig

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient:
    """Anthropic 提供方客户端实现。"""

    name = "anthropic"

    def __init__(self, settings):
        self._settings = settings

    def chat(self, req: ChatRequest) -> ChatResult:
        if not getattr(self._settings, "anthropic_api_key", None):
            raise ConfigurationError(code="MISSING_API_KEY", message="ANTHROPIC_API_KEY not set")
        model_cfg = ANTHROPIC_CONFIG.models[req.model]
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "anthropic_base_url", None) or ANTHROPIC_CONFIG.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base.rstrip('/')}/messages",
                    json=payload,
                    headers={
                        "x-api-key": self._settings.anthropic_api_key,
                        "anthropic-version": ANTHROPIC_VERSION,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        raise_for_provider_status(resp, self.name)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderUnavailable(code="INVALID_RESPONSE", message=str(e), provider=self.name)
        return self._parse_response(data, req)

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        payload: Dict[str, Any] = {
            "model": model_cfg.provider_model,
            "messages": self._normalize_messages(req.messages),
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
        }
        if req.system:
            payload["system"] = req.system
        return payload

    @staticmethod
    def _normalize_messages(messages: List[ChatMessage]) -> List[Dict[str, str]]:
        """丢弃开头的 assistant 消息，合并相邻同角色消息。"""

        out: List[Dict[str, str]] = []
        for m in messages:
            if m.role == "system":
                continue
            if not out and m.role != "user":
                continue
            if out and out[-1]["role"] == m.role:
                out[-1]["content"] = f"{out[-1]['content']}\n\n{m.content}"
                continue
            out.append({"role": m.role, "content": m.content})
        return out

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        parts = [
            block.get("text") or ""
            for block in data.get("content") or []
            if block.get("type", "text") == "text"
        ]
        message = ChatMessage(role="assistant", content="".join(parts))
        choices = [ChatChoice(index=0, message=message, finish_reason=data.get("stop_reason"))] if parts else []
        usage_raw = data.get("usage") or {}
        prompt_tokens = usage_raw.get("input_tokens", 0)
        completion_tokens = usage_raw.get("output_tokens", 0)
        usage = ChatUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)
