"""会话内消息记录与请求状态。

ConversationLog 只允许追加：序号由日志在追加时分配，严格递增且不复用，
与 created_at 无关。日志只在单个会话生命周期内存在，不做持久化。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from chat_core.domain.exceptions import ErrorKind


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM_ERROR = "system_error"


class RequestState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str
    sequence: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # 仅 SYSTEM_ERROR 条目携带，用于区分失败类别
    error_kind: Optional[ErrorKind] = None


class ConversationLog:
    """有序、只追加的消息日志。"""

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._next_sequence = 0

    def append(
        self,
        role: MessageRole,
        content: str,
        error_kind: Optional[ErrorKind] = None,
    ) -> Message:
        """追加一条消息并分配下一个序号。"""
        msg = Message(
            role=role,
            content=content,
            sequence=self._next_sequence,
            error_kind=error_kind,
        )
        self._messages.append(msg)
        self._next_sequence += 1
        return msg

    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))


@dataclass(frozen=True)
class SessionSnapshot:
    """渲染层使用的只读快照。"""

    messages: Tuple[Message, ...]
    request_state: RequestState
    draft: str = ""

    @property
    def is_pending(self) -> bool:
        return self.request_state is RequestState.PENDING

    @property
    def is_empty(self) -> bool:
        return not self.messages
