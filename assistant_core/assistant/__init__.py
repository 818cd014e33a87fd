"""助手流水线各阶段：上下文构建、实体解析、协议编译、模型网关、响应分类、会话管理。"""
