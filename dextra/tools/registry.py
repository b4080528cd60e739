"""
Dextra Tool Catalog - the capability gate and name resolution.

The full catalog is filtered per request by ``list_available_tools``: a
tool is offered only if it is not disabled by configuration and every
credential it declares is present in the environment. Everything
downstream (selector, turn executor, action runner) only ever sees the
filtered view.
"""

import json
import logging
import os
from typing import Dict, Iterable, List, Mapping, Optional, Set

from ..constants import CONFIRMATION_MARKER
from ..errors import ToolSpecError
from .models import ToolSpec, Toolset

logger = logging.getLogger(__name__)


def list_available_tools(
    all_tools: Iterable[ToolSpec],
    disabled_names: Iterable[str],
    env: Mapping[str, str],
) -> List[ToolSpec]:
    """Drop disabled tools and tools missing a required credential."""
    disabled = set(disabled_names)
    available = []
    for tool in all_tools:
        if tool.name in disabled:
            continue
        if any(not env.get(cred) for cred in tool.required_credentials):
            continue
        available.append(tool)
    return available


def parse_disabled_tools(raw: Optional[str]) -> Set[str]:
    """Parse a JSON list of tool names. Malformed input disables nothing."""
    if not raw:
        return set()
    try:
        names = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring malformed disabled tools list: {raw!r}")
        return set()
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        logger.warning(f"Disabled tools must be a JSON list of strings, got: {raw!r}")
        return set()
    return set(names)


def _strip_marker(text: str) -> str:
    return text.replace(CONFIRMATION_MARKER, "").strip()


class ToolCatalog:
    """
    Registry of tools and toolsets.

    Usage:
        catalog = ToolCatalog(disabled_names={"send_telegram_notification"})
        catalog.register(search_token_tool)
        catalog.register_toolset(Toolset("market_tools", "...", ["get_token_profile"]))

        tools = catalog.resolve_tools_by_name(["market_tools", "search_token"])
    """

    def __init__(
        self,
        disabled_names: Optional[Iterable[str]] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self._tools: Dict[str, ToolSpec] = {}
        self._toolsets: Dict[str, Toolset] = {}
        self.disabled_names: Set[str] = set(disabled_names or ())
        self._env = env

    @property
    def env(self) -> Mapping[str, str]:
        return self._env if self._env is not None else os.environ

    def register(self, tool: ToolSpec, toolset: Optional[str] = None) -> None:
        if not isinstance(tool, ToolSpec):
            raise ToolSpecError(f"Expected ToolSpec, got {type(tool).__name__}")
        if tool.name in self._tools or tool.name in self._toolsets:
            raise ToolSpecError(f"Duplicate tool name: {tool.name}")
        self._tools[tool.name] = tool
        if toolset:
            group = self._toolsets.get(toolset)
            if group is None:
                raise ToolSpecError(f"Unknown toolset {toolset!r} for tool {tool.name}")
            if tool.name not in group.tools:
                group.tools.append(tool.name)
        logger.debug(f"Registered tool: {tool.name}")

    def register_toolset(self, toolset: Toolset) -> None:
        if toolset.name in self._toolsets or toolset.name in self._tools:
            raise ToolSpecError(f"Duplicate toolset name: {toolset.name}")
        self._toolsets[toolset.name] = toolset

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def get_toolset(self, name: str) -> Optional[Toolset]:
        return self._toolsets.get(name)

    @property
    def all_tools(self) -> List[ToolSpec]:
        return list(self._tools.values())

    @property
    def toolsets(self) -> List[Toolset]:
        return list(self._toolsets.values())

    def available_tools(self) -> List[ToolSpec]:
        return list_available_tools(self._tools.values(), self.disabled_names, self.env)

    def resolve_tools_by_name(self, names: Iterable[str]) -> List[ToolSpec]:
        """Map tool and toolset names to available tools.

        Unknown names (including ``INVALID_TOOL:`` sentinels) are dropped.
        Order follows first mention; duplicates are removed.
        """
        available = {tool.name: tool for tool in self.available_tools()}
        resolved: List[ToolSpec] = []
        seen: Set[str] = set()

        def add(tool_name: str) -> None:
            tool = available.get(tool_name)
            if tool is not None and tool_name not in seen:
                seen.add(tool_name)
                resolved.append(tool)

        for name in names:
            toolset = self.get_toolset(name)
            if toolset is not None:
                for member in toolset.tools:
                    add(member)
            else:
                add(name)
        return resolved

    def describe_for_selection(self, strip_confirmation_marker: bool = False) -> str:
        """Render available toolsets and tools as a markdown list for the selector."""
        available = {tool.name: tool for tool in self.available_tools()}

        def describe(text: str) -> str:
            return _strip_marker(text) if strip_confirmation_marker else text

        lines: List[str] = []
        grouped: Set[str] = set()
        for toolset in self._toolsets.values():
            members = [available[n] for n in toolset.tools if n in available]
            if not members:
                continue
            lines.append(f"- **{toolset.name}**: {describe(toolset.description)}")
            for tool in members:
                lines.append(f"  - {tool.name}: {describe(tool.description)}")
                grouped.add(tool.name)
        for name, tool in available.items():
            if name not in grouped:
                lines.append(f"- **{name}**: {describe(tool.description)}")
        return "\n".join(lines)
