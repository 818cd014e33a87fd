"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在会话层统一捕获并转换为面向用户的助手消息。

分类：
- ConfigurationError: Provider 凭据缺失，在调用模型之前失败。
- ContextBuildError: 任一上下文读取失败，整次构建中止。
- ProviderError: 模型调用失败（ProviderUnavailable / ProviderRejected）。
- EntityNotFoundError: 引用的项目等无法解析，由执行器转换为友好提示。
- ExecutionError: 写入失败，不自动重试。
- StoreError: 会话历史读写失败。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """必需的配置（如 Provider API Key）缺失。"""


class ContextBuildError(BusinessError):
    """上下文快照构建失败（任一读取失败即失败，不做降级）。"""


class ProviderError(BusinessError):
    """语言模型调用失败的基类。"""


class ProviderUnavailable(ProviderError):
    """Provider 暂不可用：网络错误、超时、限流、5xx。"""


class ProviderRejected(ProviderError):
    """Provider 拒绝了请求：4xx（如 prompt 非法）或返回为空。"""


class NetworkError(ProviderUnavailable):
    """网络层错误，例如连接失败、超时等。"""


class RateLimitError(ProviderUnavailable):
    """Provider 限流错误（429）。"""


class EntityNotFoundError(BusinessError):
    """引用的实体无法解析，由执行器转换为 NOT_FOUND 结果。

    Attributes (extra):
        entity: 实体类型，如 "project"。
        reference: 用户给出的原始名称。
    """


class ExecutionError(BusinessError):
    """动作写入失败，携带具体原因供用户查看。"""


class StoreError(BusinessError):
    """会话历史存储读写失败，或违反了消息顺序约束。"""


class ConversationBusyError(BusinessError):
    """同一会话已有一轮请求在处理中。"""
