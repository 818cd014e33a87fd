"""Assistant Core 顶层包。

该包提供工作区自然语言操作助手的核心实现，
包括配置加载、领域模型、Provider 适配、上下文构建、
动作解析与执行、会话管理与持久化存储等能力。
"""

from assistant_core.api.service import (
    get_conversation_messages,
    get_pending_proposal,
    run_pipeline,
    send_assistant_message,
)

__all__ = ["send_assistant_message", "run_pipeline", "get_conversation_messages", "get_pending_proposal"]
