"""
Dextra Tool Executor - run one validated tool call.

Argument validation errors propagate as ``ToolArgumentsError`` so the
caller can attempt a repair. Anything the tool itself raises is turned
into a structured failure result; a broken tool never aborts a turn.
"""

import json
import logging
import os
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from ..errors import ToolArgumentsError
from ..llm.base import ToolCall
from .models import ToolContext, ToolKind, ToolSpec

logger = logging.getLogger(__name__)


def failure_result(error: str) -> Dict[str, Any]:
    return {"success": False, "error": error}


def validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class ToolExecutor:
    """
    Usage:
        executor = ToolExecutor(services={"actions": action_repo})
        context = executor.build_context(tool, user_id, conversation_id, wallet)
        result = await executor.execute(tool, call, context)
    """

    def __init__(
        self,
        services: Optional[Dict[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.services = services or {}
        self._env = env

    @property
    def env(self) -> Mapping[str, str]:
        return self._env if self._env is not None else os.environ

    def build_context(
        self,
        tool: ToolSpec,
        user_id: str,
        conversation_id: str,
        wallet_public_key: Optional[str] = None,
    ) -> ToolContext:
        return ToolContext(
            user_id=user_id,
            conversation_id=conversation_id,
            wallet_public_key=wallet_public_key,
            credentials={
                name: self.env[name]
                for name in tool.required_credentials
                if self.env.get(name)
            },
            services=self.services,
        )

    def validate(self, tool: ToolSpec, call: ToolCall):
        """Return the parsed parameters model or raise ToolArgumentsError."""
        if call.raw_arguments is not None and not call.arguments:
            raise ToolArgumentsError(
                tool.name, f"arguments are not a valid JSON object: {call.raw_arguments}"
            )
        try:
            return tool.validate_arguments(call.arguments)
        except ValidationError as e:
            raise ToolArgumentsError(tool.name, validation_message(e)) from e

    async def execute(self, tool: ToolSpec, call: ToolCall, context: ToolContext) -> Any:
        if tool.kind != ToolKind.SERVER:
            raise ValueError(f"Client tool {tool.name} cannot be executed")

        args = self.validate(tool, call)

        try:
            result = await tool.executor(args, context)
        except Exception as e:
            logger.error(f"Tool '{tool.name}' execution failed: {e}", exc_info=True)
            return failure_result(f"Error executing {tool.name}: {e}")

        logger.info(f"Tool '{tool.name}' executed")
        return result


def result_to_content(result: Any) -> str:
    """Serialize a tool result for the model transcript."""
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)
