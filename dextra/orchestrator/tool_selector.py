"""Tool Selector - picks the tool groups a request needs.

Runs as one lightweight LLM call before the step loop. The answer narrows
the tools offered to the main model; it never widens them beyond the
filtered catalog. Falls back to "no restriction" on any failure.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import BASELINE_TOOL_NAME, CONFIRMATION_TOOL_NAME, INVALID_TOOL_PREFIX
from ..llm.base import Usage
from ..prompts import build_orchestration_prompt
from ..protocols import LLMClientProtocol
from ..tools.registry import ToolCatalog

logger = logging.getLogger(__name__)


@dataclass
class ToolSelection:
    """Result of tool selection.

    ``tool_group_names`` is None when the model signaled no restriction;
    callers then offer the whole filtered catalog.
    """

    tool_group_names: Optional[List[str]]
    invalid_tools: List[str] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    @property
    def has_invalid(self) -> bool:
        return bool(self.invalid_tools)


class ToolSelector:
    """LLM-backed tool-group selector."""

    def __init__(self, llm_client: LLMClientProtocol, catalog: ToolCatalog, max_tokens: int = 200):
        self.llm_client = llm_client
        self.catalog = catalog
        self.max_tokens = max_tokens

    async def select(
        self,
        conversation_history: List[Dict[str, Any]],
        suppress_confirmation_tool: bool = False,
    ) -> ToolSelection:
        system = build_orchestration_prompt(
            self.catalog.describe_for_selection(
                strip_confirmation_marker=suppress_confirmation_tool
            )
        )
        messages = [{"role": "system", "content": system}, *conversation_history]
        try:
            response = await self.llm_client.chat_completion(
                messages=messages,
                config={"temperature": 0.0, "max_tokens": self.max_tokens},
            )
        except Exception as e:
            logger.warning(f"[Selector] LLM call failed, offering full catalog: {e}")
            return ToolSelection(tool_group_names=None)

        usage = getattr(response, "usage", None) or Usage()
        names = self._extract_names(getattr(response, "content", "") or "")
        if names is None:
            logger.warning("[Selector] Failed to parse tool list from response")
            return ToolSelection(tool_group_names=None, usage=usage)

        selection = self._build_selection(names, suppress_confirmation_tool, usage)
        logger.info(
            f"[Selector] tools={selection.tool_group_names} "
            f"invalid={selection.invalid_tools}"
        )
        return selection

    @staticmethod
    def _build_selection(
        names: List[str],
        suppress_confirmation_tool: bool,
        usage: Usage,
    ) -> ToolSelection:
        if not names:
            return ToolSelection(tool_group_names=None, usage=usage)

        ordered: List[str] = []
        for name in [BASELINE_TOOL_NAME, *names]:
            if name not in ordered:
                ordered.append(name)
        if suppress_confirmation_tool:
            ordered = [n for n in ordered if n != CONFIRMATION_TOOL_NAME]

        invalid = [n for n in ordered if n.startswith(INVALID_TOOL_PREFIX)]
        return ToolSelection(tool_group_names=ordered, invalid_tools=invalid, usage=usage)

    @staticmethod
    def _extract_names(text: str) -> Optional[List[str]]:
        """Extract the first JSON array of strings from model output."""
        raw = (text or "").strip()
        if not raw:
            return None
        parsed: Any = None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            m = re.search(r"\[.*?\]", raw, flags=re.DOTALL)
            if not m:
                return None
            try:
                parsed = json.loads(m.group(0))
            except json.JSONDecodeError:
                return None
        if not isinstance(parsed, list):
            return None
        return [str(item).strip() for item in parsed if isinstance(item, str) and item.strip()]
