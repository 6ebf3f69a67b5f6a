"""会话视图的纯数据部分。

把 SessionSnapshot 转成若干行 (tag, text)，供 tkinter 等渲染层直接插入；
这里不依赖任何 GUI 库。
"""

from typing import List, Tuple

from chat_core.domain.conversation import Message, MessageRole, SessionSnapshot


EMPTY_PLACEHOLDER = "Start a conversation by typing a message below..."
THINKING_TEXT = "Thinking..."

_LABELS = {
    MessageRole.USER: "You",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.SYSTEM_ERROR: "Assistant",
}

_TAGS = {
    MessageRole.USER: "user",
    MessageRole.ASSISTANT: "assistant",
    MessageRole.SYSTEM_ERROR: "error",
}


def role_label(role: MessageRole) -> str:
    return _LABELS[role]


def role_tag(role: MessageRole) -> str:
    return _TAGS[role]


def format_entry(message: Message) -> str:
    return f"{role_label(message.role)}: {message.content}"


def view_rows(snapshot: SessionSnapshot) -> List[Tuple[str, str]]:
    """按显示顺序返回 (tag, text) 行。

    空会话显示占位提示；请求进行中时在末尾追加 "Thinking..." 行。
    """
    rows: List[Tuple[str, str]] = []
    if snapshot.is_empty and not snapshot.is_pending:
        rows.append(("placeholder", EMPTY_PLACEHOLDER))
    for msg in sorted(snapshot.messages, key=lambda m: m.sequence):
        rows.append((role_tag(msg.role), format_entry(msg)))
    if snapshot.is_pending:
        rows.append(("pending", f"{role_label(MessageRole.ASSISTANT)}: {THINKING_TEXT}"))
    return rows


def send_enabled(snapshot: SessionSnapshot) -> bool:
    return not snapshot.is_pending
