"""Scheduling policy - pure functions deciding when an action runs and how a run is recorded.

``is_due`` gates each tick; ``evaluate_execution`` turns one run into the
bookkeeping update, including the pause circuit breaker:

- never succeeded, and this is at least the 3rd failed run -> pause
- succeeded before, but not in the last 24 hours -> pause
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..constants import ACTION_PAUSE_THRESHOLD, ACTION_STALE_SUCCESS
from ..models import Action


def is_due(action: Action, now: datetime) -> bool:
    if not action.triggered or action.paused or action.completed:
        return False
    if not action.frequency:
        return False
    if action.start_time is not None and action.start_time > now:
        return False
    if action.last_executed_at is None:
        return True
    return now >= action.last_executed_at + timedelta(seconds=action.frequency)


@dataclass
class ExecutionUpdate:
    """Fields written back after one run."""
    times_executed: int
    last_executed_at: datetime
    completed: bool
    paused: bool
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    pause_message: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "times_executed": self.times_executed,
            "last_executed_at": self.last_executed_at,
            "completed": self.completed,
            "paused": self.paused,
        }
        if self.last_success_at is not None:
            fields["last_success_at"] = self.last_success_at
        if self.last_failure_at is not None:
            fields["last_failure_at"] = self.last_failure_at
        return fields


def evaluate_execution(action: Action, success: bool, now: datetime) -> ExecutionUpdate:
    times_executed = action.times_executed + 1
    update = ExecutionUpdate(
        times_executed=times_executed,
        last_executed_at=now,
        completed=bool(action.max_executions) and times_executed >= action.max_executions,
        paused=action.paused,
    )

    if success:
        update.last_success_at = now
        return update

    update.last_failure_at = now
    if action.last_success_at is None:
        if times_executed >= ACTION_PAUSE_THRESHOLD:
            update.paused = True
            update.pause_message = (
                f"I've paused action {action.id} because it has failed to execute "
                f"successfully more than {ACTION_PAUSE_THRESHOLD} times."
            )
    elif action.last_success_at < now - ACTION_STALE_SUCCESS:
        update.paused = True
        update.pause_message = (
            f"I've paused action {action.id} because it has not executed "
            f"successfully in the last 24 hours."
        )
    return update
