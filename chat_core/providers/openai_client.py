"""OpenAI Chat Completions 适配器。

本模块负责：

1. 接收统一的 ChatRequest（或 prompt + 历史消息）。
2. 将其转换为 /chat/completions 的 HTTP 请求格式。
3. 调用 HTTP 接口并把各类失败映射为统一的业务异常：
   - 密钥缺失/占位符 -> ConfigurationError（不发起网络请求）
   - 网络错误/超时 -> TransportError
   - 非 2xx -> RemoteRejectedError（429 为 RateLimitError）
   - 响应结构异常 -> ProtocolError
4. 将响应 JSON 解析为统一的 ChatResult。
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from chat_core.config.settings import PLACEHOLDER_API_KEY
from chat_core.domain.exceptions import (
    ConfigurationError,
    ProtocolError,
    RateLimitError,
    RemoteRejectedError,
    TransportError,
)
from chat_core.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.registry import ModelConfig, ProviderConfig, get_provider_config


class OpenAIClient:
    """OpenAI 提供方客户端实现。

    配置对象通过构造参数注入，需提供 openai_api_key、openai_base_url、
    http_timeout 与 default_model 字段。
    """

    name = "openai"

    def __init__(self, settings):
        self._settings = settings
        self._provider_cfg: ProviderConfig = get_provider_config(self.name)

    async def complete(self, prompt: str, history: Sequence[ChatMessage] = ()) -> str:
        """发送 prompt（可附带此前的对话），返回补全文本。"""

        messages = list(history)
        messages.append(ChatMessage(role="user", content=prompt))
        req = ChatRequest(
            provider=self.name,
            model=getattr(self._settings, "default_model", None) or "chat",
            messages=messages,
        )
        result = await self.chat(req)
        return result.text

    async def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式补全调用。

        步骤：
        1. 校验密钥（缺失或占位符时直接失败）。
        2. 读取模型配置并构造 payload。
        3. 发送请求，映射网络错误与非 2xx 状态。
        4. 解析响应，结构不符时抛 ProtocolError。
        """

        api_key = self._require_api_key()
        model_cfg = self._model_config(req.model)
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "openai_base_url", None) or self._provider_cfg.base_url
        self._log(
            logging.INFO,
            "Sending completion request",
            model=model_cfg.provider_model,
            message_count=len(payload["messages"]),
        )
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise TransportError(code="TIMEOUT", message=f"Request timed out: {e}")
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接被拒绝等
            raise TransportError(code="NETWORK_ERROR", message=str(e))

        # 3xx 同样视为失败：httpx 默认不跟随重定向
        if not 200 <= resp.status_code < 300:
            raise self._rejected(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProtocolError(
                code="INVALID_JSON",
                message=f"Response body is not valid JSON: {e}",
                body=resp.text,
            )
        result = self._parse_response(data, req)
        self._log(
            logging.INFO,
            "Completion received",
            status=resp.status_code,
            finish_reason=result.choices[0].finish_reason,
            total_tokens=result.usage.total_tokens if result.usage else None,
        )
        return result

    # ---- 辅助方法 ----

    def _require_api_key(self) -> str:
        key = (getattr(self._settings, "openai_api_key", None) or "").strip()
        if not key:
            raise ConfigurationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        if key == PLACEHOLDER_API_KEY:
            raise ConfigurationError(
                code="PLACEHOLDER_API_KEY",
                message="OPENAI_API_KEY is still the placeholder value",
            )
        return key

    def _model_config(self, logical_name: str) -> ModelConfig:
        try:
            return self._provider_cfg.models[logical_name]
        except KeyError:
            raise ConfigurationError(code="UNKNOWN_MODEL", message=f"Unknown model: {logical_name!r}")

    @staticmethod
    def _build_payload(req: ChatRequest, model_cfg: ModelConfig) -> dict:
        """将 ChatRequest 转成 /chat/completions 的请求 JSON。"""

        def pick(value, default):
            return default if value is None else value

        return {
            "model": model_cfg.provider_model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "max_tokens": pick(req.max_tokens, model_cfg.max_tokens),
            "temperature": pick(req.temperature, model_cfg.default_temperature),
            "top_p": pick(req.top_p, model_cfg.top_p),
            "frequency_penalty": pick(req.frequency_penalty, model_cfg.frequency_penalty),
            "presence_penalty": pick(req.presence_penalty, model_cfg.presence_penalty),
        }

    @staticmethod
    def _rejected(resp: httpx.Response) -> RemoteRejectedError:
        """把非 2xx 响应包装为 RemoteRejectedError，优先使用 Provider 给出的 error.message。"""

        body = resp.text
        provider_message: Optional[str] = None
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict) and err.get("message"):
                provider_message = str(err["message"])
        message = provider_message or (
            f"API request failed with status {resp.status_code}: {resp.reason_phrase}"
        )
        error_cls = RateLimitError if resp.status_code == 429 else RemoteRejectedError
        code = "RATE_LIMIT" if resp.status_code == 429 else "API_ERROR"
        return error_cls(code=code, message=message, http_status=resp.status_code, body=body)

    def _parse_response(self, data: Any, req: ChatRequest) -> ChatResult:
        """将原始响应 JSON 解析为 ChatResult，choices[0].message.content 必须是字符串。"""

        if not isinstance(data, dict):
            raise ProtocolError(code="UNEXPECTED_PAYLOAD", message="Response is not a JSON object", body=data)
        raw_choices = data.get("choices")
        if not isinstance(raw_choices, list) or not raw_choices:
            raise ProtocolError(code="NO_CHOICES", message="Response has no choices", body=data)

        choices: List[ChatChoice] = []
        for i, ch in enumerate(raw_choices):
            msg = ch.get("message") if isinstance(ch, dict) else None
            content = msg.get("content") if isinstance(msg, dict) else None
            if not isinstance(content, str):
                if i == 0:
                    raise ProtocolError(
                        code="MISSING_CONTENT",
                        message="choices[0].message.content is missing or not a string",
                        body=data,
                    )
                continue
            if i == 0 and not content.strip():
                raise ProtocolError(
                    code="EMPTY_CONTENT",
                    message="choices[0].message.content is empty",
                    body=data,
                )
            choices.append(
                ChatChoice(
                    index=i,
                    message=ChatMessage(role=msg.get("role") or "assistant", content=content),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = None
        if isinstance(usage_raw, dict) and usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    @staticmethod
    def _log(level: int, message: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"provider": OpenAIClient.name}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

