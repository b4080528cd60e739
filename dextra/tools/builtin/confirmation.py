"""
ask_for_confirmation - client tool resolved by the human.

The model calls it before any state-changing tool whose description
carries the confirmation marker. It has no executor: the UI renders
Confirm / Deny buttons and the answer arrives on the next turn.
"""

from pydantic import BaseModel, Field

from ...constants import CONFIRMATION_TOOL_NAME
from ..models import ToolKind, ToolSpec


class AskForConfirmationParams(BaseModel):
    message: str = Field(description="What the user is asked to confirm")


ask_for_confirmation = ToolSpec(
    name=CONFIRMATION_TOOL_NAME,
    description=(
        "Ask the user to confirm before running a tool that requires confirmation. "
        "The user answers with Confirm or Deny."
    ),
    parameters=AskForConfirmationParams,
    kind=ToolKind.CLIENT,
    render_hint="confirmation",
)
