"""
Dextra LLM Client Base - Base class and common types for LLM clients

This module provides:
- BaseLLMClient: Abstract base class for all LLM clients
- LLMConfig: Configuration dataclass
- LLMResponse: Standardized response format
- StreamChunk: Streaming chunk format
- Usage: Token counts, summable across calls
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional


class StopReason(str, Enum):
    """Reason why the LLM stopped generating"""
    END_TURN = "end_turn"           # Natural completion
    MAX_TOKENS = "max_tokens"       # Hit token limit
    STOP_SEQUENCE = "stop_sequence" # Hit stop sequence
    TOOL_USE = "tool_use"           # Model wants to use a tool
    CONTENT_FILTER = "content_filter"
    ERROR = "error"                 # Error occurred


@dataclass
class LLMConfig:
    """
    Configuration for LLM clients.

    Attributes:
        api_key: API key for the provider
        model: Model name (e.g., "gpt-4o", "claude-3-5-sonnet")
        base_url: Optional base URL override for API
        temperature: Sampling temperature (0.0 - 2.0)
        max_tokens: Maximum tokens in response
        top_p: Nucleus sampling parameter
        timeout: Request timeout in seconds
        max_retries: Maximum number of retries on failure
    """
    api_key: Optional[str] = None
    model: str = "gpt-4o"
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 1.0
    timeout: int = 60
    max_retries: int = 3

    # Extra provider-specific params passed straight to the SDK
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
        }


@dataclass
class ToolCall:
    """A tool call from the LLM.

    ``raw_arguments`` keeps the unparsed text when the model emitted
    arguments that are not valid JSON.
    """
    id: str
    name: str
    arguments: Dict[str, Any]
    raw_arguments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
        }


@dataclass
class Usage:
    """Token usage information. ``a + b`` sums two calls."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Optional["Usage"]) -> "Usage":
        if other is None:
            return Usage(self.prompt_tokens, self.completion_tokens, self.total_tokens)
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class LLMResponse:
    """
    Standardized LLM response format.

    All provider clients return this format for consistency.
    """
    content: str
    tool_calls: Optional[List[ToolCall]] = None
    stop_reason: StopReason = StopReason.END_TURN
    usage: Optional[Usage] = None
    model: Optional[str] = None

    # Raw response for debugging
    raw_response: Optional[Any] = None

    @property
    def has_tool_calls(self) -> bool:
        return self.tool_calls is not None and len(self.tool_calls) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls] if self.tool_calls else None,
            "stop_reason": self.stop_reason.value,
            "usage": self.usage.to_dict() if self.usage else None,
            "model": self.model,
        }


@dataclass
class StreamChunk:
    """
    A chunk from streaming response.

    Tool calls and usage only appear on final chunks; ``content`` is the
    text delta of this chunk alone.
    """
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    is_final: bool = False
    stop_reason: Optional[StopReason] = None
    usage: Optional[Usage] = None

    # Accumulated content (all chunks so far)
    accumulated_content: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls] if self.tool_calls else None,
            "is_final": self.is_final,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
        }


class BaseLLMClient(ABC):
    """
    Abstract base class for LLM clients.

    Subclasses implement ``_call_api`` and ``_stream_api``; callers use
    ``chat_completion`` / ``stream_completion`` (LLMClientProtocol).
    """

    provider: str = "unknown"

    def __init__(self, config: Optional[LLMConfig] = None, **kwargs):
        if config is None:
            config = LLMConfig(**kwargs)
        else:
            for key, value in kwargs.items():
                if hasattr(config, key):
                    setattr(config, key, value)

        self.config = config

    @abstractmethod
    async def _call_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> LLMResponse:
        """Make the actual API call (provider-specific)."""
        pass

    @abstractmethod
    async def _stream_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> AsyncIterator[StreamChunk]:
        """Make streaming API call (provider-specific)."""
        pass

    def _model_params(self, **overrides) -> Dict[str, Any]:
        """Sampling params for one call: config defaults, then per-call overrides."""
        params = {
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "top_p": self.config.top_p,
            "timeout": self.config.timeout,
            "num_retries": self.config.max_retries,
            **self.config.extra,
        }
        for key in ("temperature", "max_tokens", "top_p", "timeout"):
            if overrides.get(key) is not None:
                params[key] = overrides[key]
        return params

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            tools: Optional list of OpenAI-format tool schemas
            config: Optional per-call overrides (temperature, max_tokens, ...)

        Example:
            response = await client.chat_completion([
                {"role": "system", "content": "You are helpful."},
                {"role": "user", "content": "Hello!"}
            ])
            print(response.content)
        """
        merged_kwargs = {**kwargs}
        if config:
            merged_kwargs.update(config)
        return await self._call_api(messages, tools or None, **merged_kwargs)

    async def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> AsyncIterator[StreamChunk]:
        """
        Send a streaming chat completion request.

        Example:
            async for chunk in client.stream_completion(messages):
                print(chunk.content, end="", flush=True)
                if chunk.is_final and chunk.usage:
                    print(f"\\nUsed {chunk.usage.total_tokens} tokens")
        """
        merged_kwargs = {**kwargs}
        if config:
            merged_kwargs.update(config)

        accumulated = ""
        async for chunk in self._stream_api(messages, tools or None, **merged_kwargs):
            accumulated += chunk.content
            chunk.accumulated_content = accumulated
            yield chunk

    async def close(self) -> None:
        """Release provider resources. Nothing to do by default."""
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
