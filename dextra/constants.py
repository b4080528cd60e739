"""
Shared constants for the Dextra core.

Centralizes tool names, prompt markers and scheduling limits that are
needed by the catalog, the orchestrator and the action runner alike.
"""

from datetime import timedelta

# ── Tool names ──

CONFIRMATION_TOOL_NAME = "ask_for_confirmation"
CREATE_ACTION_TOOL_NAME = "create_action"

# Always unioned into the orchestrator's selection: almost every other tool
# needs a resolved token identity first.
BASELINE_TOOL_NAME = "search_token"

# ── Prompt markers ──

CONFIRMATION_MARKER = "(requires confirmation)"
INVALID_TOOL_PREFIX = "INVALID_TOOL:"
NO_CONFIRMATION_MESSAGE = " (Does not require confirmation)"

# ── Confirmation values ──

CONFIRM = "confirm"
DENY = "deny"

# ── Turn limits ──

MAX_HISTORY_MESSAGES = 30
MAX_TURN_STEPS = 15
TURN_TIMEOUT_S = 120
TITLE_MAX_CHARS = 80

# ── Scheduled actions ──

ACTION_PAUSE_THRESHOLD = 3
ACTION_STALE_SUCCESS = timedelta(hours=24)
ACTION_TIMEOUT_S = 120
CRON_TIMEOUT_S = 300

# ── Stream events ──

TOOL_UPDATE_EVENT = "tool-update"
