"""Conversation titles from the first user message."""

import json
import logging

from ..constants import TITLE_MAX_CHARS
from ..prompts import TITLE_SYSTEM_PROMPT
from ..protocols import LLMClientProtocol

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"


def clean_title(text: str) -> str:
    """Strip quotes and colons, collapse whitespace, cap the length."""
    for ch in ('"', "'", ":", "`"):
        text = text.replace(ch, "")
    text = " ".join(text.split())
    return text[:TITLE_MAX_CHARS].strip()


async def generate_title(llm_client: LLMClientProtocol, message_text: str) -> str:
    """Ask the model for a title; fall back to the truncated message."""
    fallback = clean_title(message_text) or DEFAULT_TITLE
    try:
        response = await llm_client.chat_completion(
            messages=[
                {"role": "system", "content": TITLE_SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(message_text)},
            ],
            config={"temperature": 0.0, "max_tokens": 40},
        )
    except Exception as e:
        logger.warning(f"[Turn] Title generation failed: {e}")
        return fallback
    return clean_title(getattr(response, "content", "") or "") or fallback
