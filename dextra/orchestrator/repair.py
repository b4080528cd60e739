"""Argument Repair - one LLM attempt to fix invalid tool-call arguments.

Bounded: exactly one call per failed tool call. The caller re-validates
the repaired arguments and records a failure if they are still invalid.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..llm.base import ToolCall, Usage
from ..prompts import build_repair_prompt
from ..protocols import LLMClientProtocol
from ..tools.models import ToolSpec

logger = logging.getLogger(__name__)


@dataclass
class RepairResult:
    arguments: Optional[Dict[str, Any]]
    usage: Usage = field(default_factory=Usage)

    @property
    def repaired(self) -> bool:
        return self.arguments is not None


class ArgumentRepairer:
    def __init__(self, llm_client: LLMClientProtocol, max_tokens: int = 1000):
        self.llm_client = llm_client
        self.max_tokens = max_tokens

    async def repair(self, tool: ToolSpec, call: ToolCall, error: str) -> RepairResult:
        offending = call.raw_arguments if call.raw_arguments is not None else call.arguments
        prompt = build_repair_prompt(tool.name, offending, error, tool.json_schema())
        logger.info(f"[Repair] Repairing arguments for '{tool.name}': {error}")
        try:
            response = await self.llm_client.chat_completion(
                messages=[{"role": "user", "content": prompt}],
                config={
                    "temperature": 0.0,
                    "max_tokens": self.max_tokens,
                    "response_format": {"type": "json_object"},
                },
            )
        except Exception as e:
            logger.warning(f"[Repair] LLM call failed for '{tool.name}': {e}")
            return RepairResult(arguments=None)

        usage = getattr(response, "usage", None) or Usage()
        arguments = self._extract_object(getattr(response, "content", "") or "")
        if arguments is None:
            logger.warning(f"[Repair] No JSON object in repair output for '{tool.name}'")
        return RepairResult(arguments=arguments, usage=usage)

    @staticmethod
    def _extract_object(text: str) -> Optional[Dict[str, Any]]:
        raw = (text or "").strip()
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            return parsed if isinstance(parsed, dict) else None
        except json.JSONDecodeError:
            pass
        m = re.search(r"\{.*\}", raw, flags=re.DOTALL)
        if not m:
            return None
        try:
            parsed = json.loads(m.group(0))
            return parsed if isinstance(parsed, dict) else None
        except json.JSONDecodeError:
            return None
