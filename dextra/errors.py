"""Exception hierarchy for the Dextra core."""


class DextraError(Exception):
    """Base class for all Dextra errors."""


class ConfigError(DextraError):
    """Configuration file is missing required fields or is malformed."""


class ToolSpecError(DextraError):
    """A tool failed validation at registration time."""


class NoSuchToolError(DextraError):
    """The model called a tool that is not in the active tool set.

    Never repaired: repairing a hallucinated tool name would hide a
    capability gap from the user.
    """

    def __init__(self, tool_name: str, available: list = None):
        self.tool_name = tool_name
        self.available = list(available or [])
        super().__init__(f"Tool '{tool_name}' is not available for this request")


class ToolArgumentsError(DextraError):
    """Tool call arguments failed schema validation."""

    def __init__(self, tool_name: str, detail: str):
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Invalid arguments for tool '{tool_name}': {detail}")


class ConversationNotFoundError(DextraError):
    """Conversation does not exist or is not owned by the caller."""
