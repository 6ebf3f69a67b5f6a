"""会话控制器。

把用户输入转换为有序的消息日志，并保证任一时刻最多只有一个进行中的补全请求：

    IDLE --submit--> PENDING --(成功 | 失败 | 超时 | 取消)--> IDLE

每次通过前置检查的 submit 都会让日志恰好增加两条：用户消息，
以及助手回复或 SYSTEM_ERROR 兜底条目。Provider 的原始错误只写入观测日志，
不会出现在会话内容里。

控制器运行在单个 asyncio 事件循环中；状态检查与切换由一把线程锁保护，
因此 UI 线程可以随时读取快照，多线程调用 submit 也不会同时进入 PENDING。
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import (
    ConversationLog,
    Message,
    MessageRole,
    RequestState,
    SessionSnapshot,
)
from chat_core.domain.exceptions import (
    BusinessError,
    BusyError,
    ErrorKind,
    ProtocolError,
    TransportError,
)
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import CompletionClient


FALLBACK_TEXT = "Sorry, there was an error processing your message."
CANCELLED_TEXT = "Request cancelled."

Listener = Callable[[SessionSnapshot], None]
Outcome = Tuple[MessageRole, str, Optional[ErrorKind]]


class ConversationSession:
    def __init__(
        self,
        client: CompletionClient,
        cfg=settings,
        request_deadline: Optional[float] = None,
        context_mode: Optional[str] = None,
        max_context_messages: Optional[int] = None,
    ):
        """初始化会话。

        Args:
            client: Completion Client 实例
            cfg: 配置对象，未显式传入的参数从这里读取
            request_deadline: 单次请求总时限（秒）
            context_mode: "full" 携带此前轮次；"latest" 只发送最新输入
            max_context_messages: full 模式下最多携带的历史消息数
        """
        self._client = client
        self._deadline = (
            request_deadline if request_deadline is not None else getattr(cfg, "request_deadline", 60.0)
        )
        self._context_mode = context_mode or getattr(cfg, "context_mode", "full")
        if self._context_mode not in ("full", "latest"):
            raise ValueError(f"Unknown context mode: {self._context_mode!r}")
        self._max_context = (
            max_context_messages
            if max_context_messages is not None
            else getattr(cfg, "max_context_messages", 20)
        )

        self._lock = threading.Lock()
        self._conversation_log = ConversationLog()
        self._state = RequestState.IDLE
        self._draft = ""
        self._inflight: Optional[asyncio.Future] = None
        self._listeners: List[Listener] = []
        self._session_id = f"s-{uuid4().hex}"

    # ---- 只读视图 ----

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def request_state(self) -> RequestState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is RequestState.PENDING

    @property
    def messages(self) -> Tuple[Message, ...]:
        with self._lock:
            return self._conversation_log.messages()

    @property
    def draft(self) -> str:
        return self._draft

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册快照监听器，返回取消注册的函数。"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- 操作 ----

    def set_draft(self, text: str) -> None:
        with self._lock:
            self._draft = text
        self._notify()

    async def submit(self, text: Optional[str] = None) -> Optional[Message]:
        """提交一条用户输入。

        text 为 None 时提交当前草稿。空白输入直接忽略并返回 None；
        已有请求进行中时抛出 BusyError，且不改变任何状态。

        Returns:
            本轮追加的回复条目（ASSISTANT 或 SYSTEM_ERROR）。
        """
        if text is None:
            text = self._draft
        if not text or not text.strip():
            return None

        with self._lock:
            if self._state is RequestState.PENDING:
                raise BusyError(code="BUSY", message="A request is already pending")
            history = self._build_context()
            user_msg = self._conversation_log.append(MessageRole.USER, text)
            self._draft = ""
            self._state = RequestState.PENDING
        self._notify()

        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "session_id": self._session_id,
            "sequence": user_msg.sequence,
        }
        self._log(logging.INFO, "Stored user message", log_ctx, context_messages=len(history))

        outcome: Optional[Outcome] = None
        try:
            outcome = await self._run_completion(text, history, log_ctx)
        finally:
            if outcome is None:
                # 外层任务被取消或出现非 Exception 的中断
                self._log(logging.WARNING, "Submit interrupted", log_ctx)
                outcome = (MessageRole.SYSTEM_ERROR, CANCELLED_TEXT, ErrorKind.CANCELLED)
            reply = self._finish(outcome)

        self._log(
            logging.INFO,
            "Completed turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            reply_role=reply.role.value,
            reply_sequence=reply.sequence,
        )
        return reply

    def cancel(self) -> bool:
        """取消进行中的补全请求；空闲时返回 False。

        必须在控制器所在的事件循环线程中调用（其他线程请用 loop.call_soon_threadsafe）。
        """
        with self._lock:
            inflight = self._inflight
        if inflight is None or inflight.done():
            return False
        return inflight.cancel()

    def reset(self) -> None:
        """开始新会话：清空日志与草稿，序号从 0 重新开始。"""
        with self._lock:
            if self._state is RequestState.PENDING:
                raise BusyError(code="BUSY", message="Cannot reset while a request is pending")
            self._conversation_log = ConversationLog()
            self._draft = ""
            self._session_id = f"s-{uuid4().hex}"
        self._log(logging.INFO, "Session reset", {"session_id": self._session_id})
        self._notify()

    # ---- 内部实现 ----

    async def _run_completion(
        self,
        text: str,
        history: Sequence[ChatMessage],
        log_ctx: Dict[str, Any],
    ) -> Outcome:
        inflight = asyncio.ensure_future(self._client.complete(text, history))
        with self._lock:
            self._inflight = inflight
        try:
            done, _ = await asyncio.wait({inflight}, timeout=self._deadline)
        except asyncio.CancelledError:
            # 外层被取消：等待补全任务完成自身的清理后再继续传播
            inflight.cancel()
            await asyncio.shield(asyncio.wait({inflight}))
            raise
        finally:
            with self._lock:
                self._inflight = None

        if not done:
            inflight.cancel()
            await asyncio.wait({inflight})
            if not inflight.cancelled():
                # 客户端忽略了取消：结果丢弃，异常取出以免告警
                inflight.exception()
            err = TransportError(
                code="TIMEOUT",
                message=f"No completion within {self._deadline}s",
                deadline_seconds=self._deadline,
            )
            return self._failure(err, log_ctx)

        if inflight.cancelled():
            self._log(logging.INFO, "Completion cancelled", log_ctx)
            return MessageRole.SYSTEM_ERROR, CANCELLED_TEXT, ErrorKind.CANCELLED

        exc = inflight.exception()
        if exc is None:
            content = inflight.result()
            if isinstance(content, str):
                return MessageRole.ASSISTANT, content, None
            exc = ProtocolError(
                code="NON_TEXT_COMPLETION",
                message=f"Completion client returned {type(content).__name__}",
            )
        if isinstance(exc, BusinessError):
            return self._failure(exc, log_ctx)

        logger.error(
            "Unexpected completion failure",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"extra": dict(log_ctx, error_kind=ErrorKind.PROTOCOL.value)},
        )
        return MessageRole.SYSTEM_ERROR, FALLBACK_TEXT, ErrorKind.PROTOCOL

    def _failure(self, err: BusinessError, log_ctx: Dict[str, Any]) -> Outcome:
        """记录完整错误信息，返回对用户展示的兜底条目。"""
        self._log(logging.ERROR, "Completion failed", log_ctx, **err.to_log_fields())
        return MessageRole.SYSTEM_ERROR, FALLBACK_TEXT, err.kind

    def _finish(self, outcome: Outcome) -> Message:
        role, content, kind = outcome
        with self._lock:
            reply = self._conversation_log.append(role, content, error_kind=kind)
            self._state = RequestState.IDLE
        self._notify()
        return reply

    def _build_context(self) -> List[ChatMessage]:
        """构造发送给 Provider 的历史消息（调用方持有锁）。

        只携带已完成的轮次：回复失败的用户消息和 SYSTEM_ERROR 条目都不发送。
        """
        if self._context_mode == "latest":
            return []
        msgs = self._conversation_log.messages()
        context: List[ChatMessage] = []
        for i, m in enumerate(msgs):
            if m.role is MessageRole.USER:
                nxt = msgs[i + 1] if i + 1 < len(msgs) else None
                if nxt is not None and nxt.role is MessageRole.ASSISTANT:
                    context.append(ChatMessage(role="user", content=m.content))
            elif m.role is MessageRole.ASSISTANT:
                context.append(ChatMessage(role="assistant", content=m.content))
        if len(context) > self._max_context:
            context = context[len(context) - self._max_context:]
        return context

    def _snapshot_locked(self) -> SessionSnapshot:
        return SessionSnapshot(
            messages=self._conversation_log.messages(),
            request_state=self._state,
            draft=self._draft,
        )

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:  # noqa: BLE001 - 渲染层异常不能影响会话状态
                logger.exception(
                    "Snapshot listener failed",
                    extra={"extra": {"session_id": self._session_id}},
                )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
