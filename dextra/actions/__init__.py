"""Dextra Actions - scheduled replay of user requests."""

from .policy import ExecutionUpdate, evaluate_execution, is_due
from .runner import ActionRunner, TickResult

__all__ = [
    "ActionRunner",
    "TickResult",
    "ExecutionUpdate",
    "evaluate_execution",
    "is_due",
]
