"""领域层模型与协议。

包含：
- models: ConversationTurn / ValidatedPrompt / PendingRequest 等数据结构。
- validation: 请求体校验、屏蔽词过滤与历史记录过滤。
- exceptions: 业务异常类型定义。
"""
