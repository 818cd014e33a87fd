"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- conversation: 会话消息、待确认提议及 ConversationStore 抽象。
- actions: 动作语法（ActionKind 及各动作的负载模型）与执行结果。
- workspace: 工作区实体记录与上下文快照。
- exceptions: 业务异常类型定义。
"""
