"""
Dextra Protocols - the narrow contracts the core depends on.

The turn executor, selector and action runner only need these two calls,
so tests can substitute an ``AsyncMock`` or a scripted fake.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class LLMClientProtocol(Protocol):
    """Chat-completion client, streaming and non-streaming."""

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Return an object with ``content``, ``tool_calls`` and ``usage``."""
        ...

    def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[Any]:
        """Yield chunks with ``content``; the final one carries ``tool_calls``/``usage``."""
        ...
