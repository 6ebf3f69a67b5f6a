"""Chat Core 顶层包。

该包提供聊天控制台的核心实现，
包括配置加载、领域模型、Completion Client 适配、
会话控制器（单请求生命周期与消息日志）以及轻量的渲染层。
"""

from chat_core.providers import create_provider
from chat_core.session import ConversationSession

__all__ = ["ConversationSession", "create_provider"]
