"""Provider 抽象接口。

上层网关不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenAIClient、AnthropicClient）。
- 负责：将 ChatRequest 转成具体 API 请求，并把响应 JSON 解析为 ChatResult。

HTTP 失败统一按下列规则分类：
- 网络异常 / 超时 -> NetworkError（ProviderUnavailable）
- 429 -> RateLimitError（ProviderUnavailable）
- 5xx -> ProviderUnavailable
- 其他 4xx -> ProviderRejected
"""

from typing import Protocol

import httpx

from assistant_core.domain.models import ChatRequest, ChatResult
from assistant_core.domain.exceptions import ProviderRejected, ProviderUnavailable, RateLimitError


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    - name: Provider 名称，用于日志。
    - chat(req): 执行一次非流式对话调用，返回统一的 ChatResult。
    """

    name: str

    def chat(self, req: ChatRequest) -> ChatResult:
        ...


def raise_for_provider_status(resp: httpx.Response, provider: str) -> None:
    """按状态码把厂商 HTTP 错误映射为 ProviderError 子类。"""

    status = resp.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimitError(code="RATE_LIMIT", message=f"{provider} rate limit", http_status=status, provider=provider)
    if status >= 500:
        raise ProviderUnavailable(
            code="PROVIDER_UNAVAILABLE", message=resp.text or f"{provider} returned {status}",
            http_status=status, provider=provider,
        )
    raise ProviderRejected(
        code="PROVIDER_REJECTED", message=resp.text or f"{provider} returned {status}",
        http_status=status, provider=provider,
    )
