"""会话控制：单请求生命周期与消息日志。"""

from chat_core.session.controller import CANCELLED_TEXT, FALLBACK_TEXT, ConversationSession

__all__ = ["CANCELLED_TEXT", "FALLBACK_TEXT", "ConversationSession"]
