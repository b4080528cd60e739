"""
Dextra Orchestrator - drives a chat turn from message to persisted reply.

Components:
- ToolSelector: picks the tool groups a request needs
- ConfirmationHandler: resolves pending confirmation asks
- ArgumentRepairer: one-shot fix of invalid tool arguments
- StepLoop: streaming tool-calling loop shared with scheduled runs
- TurnExecutor: the interactive turn
"""

from .confirmation import (
    AffirmativeClassifier,
    ConfirmationHandler,
    ConfirmationOutcome,
    ConfirmationState,
    LLMAffirmativeClassifier,
    confirmation_state,
    find_pending_confirmation,
    get_confirmation_result,
)
from .repair import ArgumentRepairer, RepairResult
from .steps import StepLoop, StepLoopState, summarize_outcome
from .titles import generate_title
from .tool_selector import ToolSelection, ToolSelector
from .transcript import to_llm_messages
from .turn import TurnExecutor, TurnRequest, select_tools

__all__ = [
    "AffirmativeClassifier",
    "ConfirmationHandler",
    "ConfirmationOutcome",
    "ConfirmationState",
    "LLMAffirmativeClassifier",
    "confirmation_state",
    "find_pending_confirmation",
    "get_confirmation_result",
    "ArgumentRepairer",
    "RepairResult",
    "StepLoop",
    "StepLoopState",
    "summarize_outcome",
    "generate_title",
    "ToolSelection",
    "ToolSelector",
    "to_llm_messages",
    "TurnExecutor",
    "TurnRequest",
    "select_tools",
]
