"""对外 API 服务模块。

提供简化的函数接口供 UI 层调用：默认会话的创建，以及快照的序列化。
"""

from typing import Any, Dict, Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import Message, SessionSnapshot
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_provider
from chat_core.session.controller import ConversationSession


_session: Optional[ConversationSession] = None


def get_default_session() -> ConversationSession:
    """获取默认的会话实例（单例），Provider 按全局配置创建。"""
    global _session
    if _session is None:
        provider = create_provider(cfg=settings)
        _session = ConversationSession(client=provider, cfg=settings)
        logger.info(
            "Created default session",
            extra={"extra": {
                "session_id": _session.session_id,
                "provider": provider.name,
                "api_key_usable": settings.api_key_usable,
            }},
        )
    return _session


def message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "role": message.role.value,
        "content": message.content,
        "sequence": message.sequence,
        "created_at": message.created_at.isoformat(),
        "error_kind": message.error_kind.value if message.error_kind else None,
    }


def snapshot_to_dict(snapshot: SessionSnapshot) -> Dict[str, Any]:
    """把快照转换为可 JSON 序列化的字典。

    Returns:
        包含 messages、request_state、draft 的字典
    """
    return {
        "messages": [message_to_dict(m) for m in snapshot.messages],
        "request_state": snapshot.request_state.value,
        "draft": snapshot.draft,
    }
