"""
Dextra Tool Models - the tool descriptor and the context tools run with.

A tool is a fixed-shape record: name, description, a pydantic model for
its parameters, an async executor (server tools only) and the
credentials it needs. Client tools have no executor; the human resolves
them from the UI.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from ..constants import CONFIRMATION_MARKER
from ..errors import ToolSpecError

_TOOL_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class ToolKind(str, Enum):
    SERVER = "server"   # executed here
    CLIENT = "client"   # resolved by the human


@dataclass
class ToolContext:
    """Everything a tool executor may read, passed explicitly per call.

    ``credentials`` holds only the credentials the tool declared.
    ``services`` exposes stores by name (``"actions"``).
    """
    user_id: str
    conversation_id: str
    wallet_public_key: Optional[str] = None
    credentials: Dict[str, str] = field(default_factory=dict)
    services: Dict[str, Any] = field(default_factory=dict)


ToolExecutorFn = Callable[[BaseModel, ToolContext], Awaitable[Any]]


def requires_confirmation(tool: "ToolSpec") -> bool:
    """True if the tool asks for confirmation by parameter default or by marker."""
    if CONFIRMATION_MARKER in tool.description:
        return True
    param = tool.parameters.model_fields.get("requires_confirmation")
    return bool(param is not None and param.default is True)


@dataclass
class ToolSpec:
    """
    A registered tool.

    Attributes:
        name: Name the model calls the tool by.
        description: Shown to the model and to the tool selector.
        parameters: pydantic model validating the call arguments.
        executor: ``async (args, context) -> result``; None for client tools.
        required_credentials: Env names that must be set for the tool to be offered.
        render_hint: How the client should render the result.
        kind: SERVER or CLIENT.
    """
    name: str
    description: str
    parameters: Type[BaseModel]
    executor: Optional[ToolExecutorFn] = None
    required_credentials: List[str] = field(default_factory=list)
    render_hint: str = ""
    kind: ToolKind = ToolKind.SERVER
    confirmation_required: bool = field(init=False, default=False)

    def __post_init__(self):
        if not self.name or not _TOOL_NAME_RE.match(self.name):
            raise ToolSpecError(f"Invalid tool name: {self.name!r}")
        if not self.description or not self.description.strip():
            raise ToolSpecError(f"Tool {self.name!r} has no description")
        if not (isinstance(self.parameters, type) and issubclass(self.parameters, BaseModel)):
            raise ToolSpecError(f"Tool {self.name!r} parameters must be a pydantic model")
        if self.kind == ToolKind.SERVER and self.executor is None:
            raise ToolSpecError(f"Server tool {self.name!r} needs an executor")
        if self.kind == ToolKind.CLIENT and self.executor is not None:
            raise ToolSpecError(f"Client tool {self.name!r} must not have an executor")
        for cred in self.required_credentials:
            if not isinstance(cred, str) or not cred:
                raise ToolSpecError(f"Tool {self.name!r} has an invalid credential name: {cred!r}")
        self.confirmation_required = requires_confirmation(self)

    def validate_arguments(self, arguments: Dict[str, Any]) -> BaseModel:
        """Raises pydantic.ValidationError on mismatch."""
        return self.parameters.model_validate(arguments)

    def json_schema(self) -> Dict[str, Any]:
        schema = self.parameters.model_json_schema()
        schema.pop("title", None)
        return schema

    def to_openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }


@dataclass
class Toolset:
    """A named group of tools the selector can ask for as a unit."""
    name: str
    description: str
    tools: List[str] = field(default_factory=list)
