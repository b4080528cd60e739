"""Built-in prompts for the Dextra orchestrator.

Each section is a function or constant; ``build_system_prompt`` composes
the per-turn system prompt from the static instructions plus runtime
facts about the caller.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import (
    BASELINE_TOOL_NAME,
    CONFIRMATION_MARKER,
    CONFIRMATION_TOOL_NAME,
    CREATE_ACTION_TOOL_NAME,
    INVALID_TOOL_PREFIX,
    TITLE_MAX_CHARS,
)
from .models import utcnow


DEFAULT_SYSTEM_PROMPT = f"""
Your name is Dextra.
You are an assistant for Solana blockchain and DeFi operations. Be accurate, careful with funds, and brief.

# Rules
- Always use the `{BASELINE_TOOL_NAME}` tool to resolve the correct token mint before acting on a token named by the user.
- Never call a tool you have not been given. If a request needs a capability you do not have, tell the user it is not supported.
- If a tool result says `noFollowUp: true`, do not respond.

# Confirmation Handling
- Before running any tool whose `requires_confirmation` parameter is true or whose description contains "{CONFIRMATION_MARKER}":
  1. Call `{CONFIRMATION_TOOL_NAME}` to ask the user.
  2. Stop your response right after calling it.
  3. Wait for the user's answer in a separate turn.
  4. Never ask for confirmation when Degen Mode is true.
- When the user confirms, run the tool in the new turn.
- When the user denies, acknowledge it and do not run the tool. Do not ask again unless the user asks.
- Never ask for confirmation and run the tool in the same response.

# Scheduled Actions
- Scheduled actions replay a request on a fixed interval without the user present.
- Ask for confirmation with `{CONFIRMATION_TOOL_NAME}` before calling `{CREATE_ACTION_TOOL_NAME}`.
- After `{CREATE_ACTION_TOOL_NAME}` succeeds, only say that the action has been scheduled.

# Response Formatting
- Use markdown and line breaks between sections.
- Keep answers short and well organized.
- Abbreviate transaction signatures and addresses.
""".strip()


def render_realtime_knowledge(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"Realtime knowledge:\n- {{ approximateCurrentTime: {now.isoformat()} }}"


def build_system_prompt(
    wallet_public_key: Optional[str],
    user_id: Optional[str] = None,
    conversation_id: Optional[str] = None,
    degen_mode: Optional[bool] = None,
    attachments: Optional[List[Dict[str, Any]]] = None,
    now: Optional[datetime] = None,
) -> str:
    """Compose the system prompt for one turn.

    Sections with no value are left out, so the scheduled runner can pass
    only the wallet key.
    """
    sections = [DEFAULT_SYSTEM_PROMPT, render_realtime_knowledge(now)]
    if attachments is not None:
        sections.append(f"History of attachments: {json.dumps(attachments)}")
    sections.append(f"User Solana wallet public key: {wallet_public_key}")
    if user_id is not None:
        sections.append(f"User ID: {user_id}")
    if conversation_id is not None:
        sections.append(f"Conversation ID: {conversation_id}")
    if degen_mode is not None:
        sections.append(f"Degen Mode: {'true' if degen_mode else 'false'}")
    return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Tool selection
# ---------------------------------------------------------------------------

def build_orchestration_prompt(tool_listing: str) -> str:
    return f"""
You are Dextra's tool router for Solana and DeFi requests.

Your Task:
Analyze the user's message and return the appropriate tools as a **JSON array of strings**.

Rules:
- Only include `{CONFIRMATION_TOOL_NAME}` if the request needs a transaction signature or creates an action.
- Return names only, in the format: ["toolset1", "tool2", ...].
- Do not add any text, explanations, or comments outside the array.
- Be complete. Include every toolset needed to handle the request; when unsure, include it.
- If the request cannot be handled by the available tools, return entries describing the missing tools: ["{INVALID_TOOL_PREFIX}<missing tool name>"].
- Return [] for greetings and questions that need no tools.

Available Tools:
{tool_listing}
""".strip()


# ---------------------------------------------------------------------------
# Single-purpose helper prompts
# ---------------------------------------------------------------------------

TITLE_SYSTEM_PROMPT = f"""
- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than {TITLE_MAX_CHARS} characters long
- the title should be a summary of the user's message
- do not use quotes or colons
""".strip()


AFFIRMATIVE_SYSTEM_PROMPT = """
- you will generate a boolean response based on a user's message content
- only return true or false
- if an explicit affirmative response cannot be determined, return false
""".strip()


def build_repair_prompt(
    tool_name: str,
    arguments: Any,
    error: str,
    schema: Dict[str, Any],
) -> str:
    return "\n".join([
        f'The model tried to call the tool "{tool_name}" with the following arguments:',
        arguments if isinstance(arguments, str) else json.dumps(arguments),
        "Validation failed with:",
        error,
        "The tool accepts the following schema:",
        json.dumps(schema),
        "Please fix the arguments.",
        "Return only the corrected arguments as a JSON object.",
    ])


def confirmation_reply_text(result: str) -> str:
    """Natural-language stand-in for a Confirm / Deny button press."""
    if result == "confirm":
        return "I confirm. Please proceed with the action."
    return "I deny. Do not proceed with the action."
