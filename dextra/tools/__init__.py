"""
Dextra Tools - catalog, capability gate and execution.

Usage:
    from dextra.tools import build_default_catalog, ToolExecutor

    catalog = build_default_catalog(disabled_names=settings.disabled_tools)
    tools = catalog.resolve_tools_by_name(["market_tools"])
"""

from .models import ToolContext, ToolKind, ToolSpec, Toolset, requires_confirmation
from .registry import ToolCatalog, list_available_tools, parse_disabled_tools
from .executor import ToolExecutor, failure_result, result_to_content
from .builtin import build_default_catalog, describe_frequency

__all__ = [
    "ToolContext",
    "ToolKind",
    "ToolSpec",
    "Toolset",
    "requires_confirmation",
    "ToolCatalog",
    "list_available_tools",
    "parse_disabled_tools",
    "ToolExecutor",
    "failure_result",
    "result_to_content",
    "build_default_catalog",
    "describe_frequency",
]
