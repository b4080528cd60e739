"""
Transcript - convert stored messages into OpenAI chat messages.

Stored assistant messages embed their tool invocations. The model needs
them as an assistant ``tool_calls`` entry followed by one ``tool``
message per call, so only invocations that already have a result are
emitted; a pending call would leave an unpaired ``tool_call_id``.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..models import Message, MessageRole
from ..tools.executor import result_to_content

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(message: Message) -> datetime:
    return message.created_at or _EPOCH


def to_llm_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    relevant = sorted((m for m in messages if not m.is_empty), key=_sort_key)

    out: List[Dict[str, Any]] = []
    for message in relevant:
        if message.role == MessageRole.USER:
            out.append({"role": "user", "content": message.text})
            continue
        if message.role != MessageRole.ASSISTANT:
            continue

        resolved = [inv for inv in message.tool_invocations if inv.is_resolved]
        text = message.text
        if not resolved:
            if text:
                out.append({"role": "assistant", "content": text})
            continue

        out.append({
            "role": "assistant",
            "content": text or None,
            "tool_calls": [
                {
                    "id": inv.tool_call_id,
                    "type": "function",
                    "function": {
                        "name": inv.tool_name,
                        "arguments": json.dumps(inv.args),
                    },
                }
                for inv in resolved
            ],
        })
        for inv in resolved:
            out.append({
                "role": "tool",
                "tool_call_id": inv.tool_call_id,
                "content": result_to_content(inv.result),
            })
    return out
