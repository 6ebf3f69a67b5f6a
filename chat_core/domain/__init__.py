"""领域层模型。

包含：
- models: 发往 Provider 的 ChatMessage / ChatRequest / ChatResult 模型。
- conversation: 会话消息日志、请求状态与只读快照。
- exceptions: 业务异常类型与 ErrorKind。
"""
