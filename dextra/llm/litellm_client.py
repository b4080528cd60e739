"""
Dextra LiteLLM Client - Unified LLM client powered by litellm

One client for every provider litellm routes to (OpenAI, Anthropic,
Azure OpenAI, Gemini, Ollama). The interactive model and the cheaper
orchestrator model are two instances of this class.
"""

import json
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from .base import (
    BaseLLMClient,
    LLMConfig,
    LLMResponse,
    StreamChunk,
    ToolCall,
    Usage,
    StopReason,
)

logger = logging.getLogger(__name__)

# Provider -> default environment variable for API key
_PROVIDER_ENV_VARS: Dict[str, Optional[str]] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "ollama": None,
}


def build_litellm_model_string(provider: str, model: str) -> str:
    """Map provider + model to the litellm model string.

    See https://docs.litellm.ai/docs/providers
    """
    provider = provider.lower()
    if provider == "openai":
        return model
    if provider in ("anthropic", "azure", "gemini", "ollama"):
        return f"{provider}/{model}"
    return model


def _parse_arguments(raw: Any) -> ToolCall:
    """Decode tool-call argument text; keep the raw text if it is not JSON."""
    if isinstance(raw, dict):
        return ToolCall(id="", name="", arguments=raw)
    if not raw:
        return ToolCall(id="", name="", arguments={})
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return ToolCall(id="", name="", arguments={}, raw_arguments=raw)
    if not isinstance(parsed, dict):
        return ToolCall(id="", name="", arguments={}, raw_arguments=raw)
    return ToolCall(id="", name="", arguments=parsed)


def _make_tool_call(call_id: str, name: str, raw_arguments: Any) -> ToolCall:
    call = _parse_arguments(raw_arguments)
    call.id = call_id
    call.name = name
    return call


def _usage_from(raw_usage: Any) -> Optional[Usage]:
    if not raw_usage:
        return None
    return Usage(
        prompt_tokens=raw_usage.prompt_tokens or 0,
        completion_tokens=raw_usage.completion_tokens or 0,
        total_tokens=raw_usage.total_tokens or 0,
    )


class LiteLLMClient(BaseLLMClient):
    """
    LLM client that delegates to litellm.

    Example:
        from dextra.llm import LiteLLMClient, LLMConfig

        config = LLMConfig(model="gpt-4o", api_key="sk-xxx")
        client = LiteLLMClient(config=config, provider_name="openai")
        response = await client.chat_completion([
            {"role": "user", "content": "Hello!"}
        ])
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        provider_name: str = "openai",
        **kwargs,
    ):
        if config is None:
            if "model" not in kwargs:
                raise ValueError("model is required")
            model = kwargs.pop("model")
            config = LLMConfig(model=model, **kwargs)

        super().__init__(config, **kwargs)

        self.provider = provider_name.lower()
        self._litellm_model = build_litellm_model_string(self.provider, self.config.model)

        # Resolve API key: explicit config > env var
        api_key = self.config.api_key
        if not api_key:
            env_var = _PROVIDER_ENV_VARS.get(self.provider)
            if env_var:
                api_key = os.environ.get(env_var)

        self._base_kwargs: Dict[str, Any] = {}
        if self.config.base_url:
            self._base_kwargs["api_base"] = self.config.base_url
        if api_key:
            self._base_kwargs["api_key"] = api_key

        logger.info(
            f"LiteLLMClient initialized: provider={self.provider}, "
            f"litellm_model={self._litellm_model}"
        )

    def _request_params(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        kwargs: Dict[str, Any],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": kwargs.get("model") or self._litellm_model,
            "messages": messages,
            **self._model_params(**kwargs),
            **self._base_kwargs,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = kwargs.get("tool_choice", "auto")
        if "stop" in kwargs:
            params["stop"] = kwargs["stop"]
        if "response_format" in kwargs:
            params["response_format"] = kwargs["response_format"]
        return params

    # ------------------------------------------------------------------
    # Core API methods
    # ------------------------------------------------------------------

    async def _call_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ) -> LLMResponse:
        """Make a non-streaming call via litellm.acompletion."""
        import litellm

        params = self._request_params(messages, tools, kwargs)
        logger.info(
            f"[LiteLLM] model={params['model']}, tools={len(tools) if tools else 0}, "
            f"messages={len(messages)}"
        )

        response = await litellm.acompletion(**params)

        choice = response.choices[0]
        message = choice.message

        tool_calls = None
        if message.tool_calls:
            tool_calls = [
                _make_tool_call(tc.id, tc.function.name, tc.function.arguments)
                for tc in message.tool_calls
            ]

        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            stop_reason=self._parse_stop_reason(choice.finish_reason),
            usage=_usage_from(getattr(response, "usage", None)),
            model=getattr(response, "model", self.config.model),
            raw_response=response,
        )

    async def _stream_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ) -> AsyncIterator[StreamChunk]:
        """Make a streaming call via litellm.acompletion(stream=True)."""
        import litellm

        params = self._request_params(messages, tools, kwargs)
        params["stream"] = True
        params["stream_options"] = {"include_usage": True}
        logger.info(
            f"[LiteLLM] stream model={params['model']}, "
            f"tools={len(tools) if tools else 0}, messages={len(messages)}"
        )

        response = await litellm.acompletion(**params)

        # Track tool call deltas across chunks
        tool_call_deltas: Dict[int, Dict[str, Any]] = {}

        async for chunk in response:
            usage = _usage_from(getattr(chunk, "usage", None))
            if not chunk.choices:
                # Final chunk may carry only usage
                if usage:
                    yield StreamChunk(content="", is_final=True, usage=usage)
                continue

            choice = chunk.choices[0]
            delta = choice.delta
            content = getattr(delta, "content", None) or ""

            if getattr(delta, "tool_calls", None):
                for tc_delta in delta.tool_calls:
                    idx = tc_delta.index
                    if idx not in tool_call_deltas:
                        tool_call_deltas[idx] = {"id": "", "name": "", "arguments": ""}
                    if tc_delta.id:
                        tool_call_deltas[idx]["id"] = tc_delta.id
                    if tc_delta.function:
                        if tc_delta.function.name:
                            tool_call_deltas[idx]["name"] = tc_delta.function.name
                        if tc_delta.function.arguments:
                            tool_call_deltas[idx]["arguments"] += tc_delta.function.arguments

            tool_calls = None
            is_final = choice.finish_reason is not None
            stop_reason = None
            if is_final:
                stop_reason = self._parse_stop_reason(choice.finish_reason)
                if tool_call_deltas:
                    tool_calls = [
                        _make_tool_call(tc["id"], tc["name"], tc["arguments"])
                        for _, tc in sorted(tool_call_deltas.items())
                    ]
                    tool_call_deltas = {}

            yield StreamChunk(
                content=content,
                tool_calls=tool_calls,
                is_final=is_final,
                stop_reason=stop_reason,
                usage=usage,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_stop_reason(finish_reason: Optional[str]) -> StopReason:
        """Map litellm/OpenAI finish_reason to StopReason enum."""
        if finish_reason is None:
            return StopReason.END_TURN
        mapping = {
            "stop": StopReason.END_TURN,
            "end_turn": StopReason.END_TURN,
            "length": StopReason.MAX_TOKENS,
            "max_tokens": StopReason.MAX_TOKENS,
            "tool_calls": StopReason.TOOL_USE,
            "tool_use": StopReason.TOOL_USE,
            "function_call": StopReason.TOOL_USE,
            "content_filter": StopReason.CONTENT_FILTER,
            "stop_sequence": StopReason.STOP_SEQUENCE,
        }
        return mapping.get(finish_reason, StopReason.END_TURN)
