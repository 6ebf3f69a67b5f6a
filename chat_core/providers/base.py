"""Completion Client 抽象接口。

会话控制器不直接依赖具体厂商的 HTTP 调用，而是依赖此协议：

- 每个厂商实现一个 CompletionClient（如 OpenAIClient）。
- complete(prompt, history): 返回纯文本补全，失败时抛出 BusinessError 子类。
- chat(req): 完整的请求/响应形式，返回统一的 ChatResult。

客户端本身无状态，每次调用对应一次网络请求。
"""

from typing import Protocol, Sequence

from chat_core.domain.models import ChatMessage, ChatRequest, ChatResult


class CompletionClient(Protocol):
    name: str

    async def complete(self, prompt: str, history: Sequence[ChatMessage] = ()) -> str:
        ...

    async def chat(self, req: ChatRequest) -> ChatResult:
        ...
