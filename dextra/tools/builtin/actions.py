"""
create_action - persist a recurring automation for the caller.

The action's description is what the runner later replays as a user
message, so it carries the no-confirmation suffix: a scheduled run has
no human to press Confirm.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ...constants import CREATE_ACTION_TOOL_NAME, NO_CONFIRMATION_MESSAGE
from ...models import Action, new_id, utcnow
from ..models import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

_NAMED_FREQUENCIES = {
    3600: "Hourly",
    86400: "Daily",
    604800: "Weekly",
    2592000: "Monthly",  # 30 days
}


def describe_frequency(seconds: Optional[int]) -> str:
    """Human label for an action frequency in seconds."""
    if not seconds:
        return "Not scheduled"
    if seconds in _NAMED_FREQUENCIES:
        return _NAMED_FREQUENCIES[seconds]
    if seconds < 3600:
        n, unit = seconds // 60, "Minute"
    elif seconds < 86400:
        n, unit = seconds // 3600, "Hour"
    else:
        n, unit = seconds // 86400, "Day"
    return f"Every {n} {unit}{'s' if n > 1 else ''}"


class CreateActionParams(BaseModel):
    requires_confirmation: bool = True
    user_id: str = Field(description="User that the action belongs to")
    conversation_id: str = Field(description="Conversation that the action belongs to")
    name: str = Field(description="Short human readable name to classify the action")
    description: str = Field(
        description=(
            "Action description to display as the main content. "
            "Should not contain the frequency or max executions"
        )
    )
    frequency: int = Field(
        gt=0,
        description=(
            "Frequency in seconds (3600 for hourly, 86400 for daily, "
            "or any custom interval in multiples of 15 minutes (900))"
        ),
    )
    max_executions: Optional[int] = Field(
        default=None, gt=0, description="Max number of times the action can be executed"
    )
    start_time_offset: Optional[int] = Field(
        default=None,
        ge=0,
        description=(
            "Milliseconds to wait before the first run, "
            "e.g. 1 hour from now = 3600000"
        ),
    )


async def create_action_executor(args: CreateActionParams, context: ToolContext) -> Dict[str, Any]:
    if args.user_id != context.user_id:
        return {"success": False, "error": "Unauthorized"}

    store = context.services.get("actions")
    if store is None:
        return {"success": False, "error": "Action storage is not available"}

    start_time = None
    if args.start_time_offset:
        start_time = utcnow() + timedelta(milliseconds=args.start_time_offset)

    action = await store.create_action(Action(
        id=new_id(),
        user_id=context.user_id,
        conversation_id=args.conversation_id,
        name=args.name,
        description=f"{args.description}{NO_CONFIRMATION_MESSAGE}",
        frequency=args.frequency,
        max_executions=args.max_executions,
        times_executed=0,
        paused=False,
        completed=False,
        triggered=True,
        start_time=start_time,
    ))
    if action is None:
        return {"success": False, "error": "Failed to create action"}

    data = action.to_dict()
    data["frequency_label"] = describe_frequency(action.frequency)
    return {"success": True, "data": data}


create_action = ToolSpec(
    name=CREATE_ACTION_TOOL_NAME,
    description=(
        "Create a recurring action that runs on a schedule (requires confirmation). "
        "Do proper checks if the action requires additional setup before creating it."
    ),
    parameters=CreateActionParams,
    executor=create_action_executor,
    render_hint="action",
)
