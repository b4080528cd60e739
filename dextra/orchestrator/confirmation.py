"""Confirmation State Machine - resolve human answers to ``ask_for_confirmation``.

A confirmation is asked by the model (a CLIENT tool call left in ``call``
state) and answered on the next turn, either by a button press (the
client sends back the invocation already resolved) or by free text that
is classified as affirmative or not. The pending invocation is resolved
in memory and in the store, keyed by ``tool_call_id``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable

from ..constants import CONFIRM, CONFIRMATION_TOOL_NAME, DENY
from ..models import InvocationState, Message, MessageRole, ToolInvocation, ToolUpdate
from ..prompts import AFFIRMATIVE_SYSTEM_PROMPT
from ..protocols import LLMClientProtocol

logger = logging.getLogger(__name__)


class ConfirmationState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    RESOLVED_CONFIRM = "resolved_confirm"
    RESOLVED_DENY = "resolved_deny"


@dataclass
class PendingConfirmation:
    message: Message
    invocation: ToolInvocation


@dataclass
class ConfirmationOutcome:
    state: ConfirmationState
    confirmation_handled: bool = False
    updates: List[ToolUpdate] = field(default_factory=list)


def _is_confirmation(inv: ToolInvocation) -> bool:
    return inv.tool_name == CONFIRMATION_TOOL_NAME


def _result_value(result: Any) -> Optional[str]:
    if isinstance(result, dict):
        result = result.get("result")
    if result is None:
        return None
    return CONFIRM if result == CONFIRM else DENY


def find_pending_confirmation(messages: List[Message]) -> Optional[PendingConfirmation]:
    """The newest assistant confirmation call that has no result yet."""
    for message in reversed(messages):
        if message.role != MessageRole.ASSISTANT:
            continue
        for inv in message.tool_invocations:
            if (
                _is_confirmation(inv)
                and inv.state == InvocationState.CALL
                and inv.result is None
            ):
                return PendingConfirmation(message=message, invocation=inv)
    return None


def confirmation_state(messages: List[Message]) -> ConfirmationState:
    """State of the most recent confirmation invocation in ``messages``."""
    for message in reversed(messages):
        for inv in reversed(message.tool_invocations):
            if not _is_confirmation(inv):
                continue
            if inv.state == InvocationState.CALL and inv.result is None:
                return ConfirmationState.PENDING
            value = _result_value(inv.result)
            if value == CONFIRM:
                return ConfirmationState.RESOLVED_CONFIRM
            return ConfirmationState.RESOLVED_DENY
    return ConfirmationState.NONE


def get_confirmation_result(message: Optional[Message]) -> Optional[str]:
    """``confirm``/``deny`` if ``message`` is a button press, else None.

    A button press arrives as a non-user message whose confirmation
    invocation is already in ``result`` state. Unknown values read as deny.
    """
    if message is None or message.role == MessageRole.USER:
        return None
    for inv in message.tool_invocations:
        if _is_confirmation(inv) and inv.state == InvocationState.RESULT:
            return _result_value(inv.result) or DENY
    return None


@runtime_checkable
class AffirmativeClassifier(Protocol):
    async def classify_affirmative(self, text: str) -> bool:
        ...


class LLMAffirmativeClassifier:
    """Asks the model for a literal ``true``/``false``. Fails closed."""

    def __init__(self, llm_client: LLMClientProtocol):
        self.llm_client = llm_client

    async def classify_affirmative(self, text: str) -> bool:
        messages = [
            {"role": "system", "content": AFFIRMATIVE_SYSTEM_PROMPT},
            {"role": "user", "content": text},
        ]
        try:
            response = await self.llm_client.chat_completion(
                messages=messages,
                config={"temperature": 0.0, "max_tokens": 5},
            )
        except Exception as e:
            logger.warning(f"[Confirmation] Classifier call failed, treating as deny: {e}")
            return False
        return (getattr(response, "content", "") or "").strip() == "true"


class ConfirmationHandler:
    """Resolves a pending confirmation against the incoming message."""

    def __init__(self, classifier: AffirmativeClassifier, message_store: Any):
        self.classifier = classifier
        self.message_store = message_store

    async def handle(
        self,
        current_message: Message,
        history: List[Message],
    ) -> ConfirmationOutcome:
        pending = find_pending_confirmation(history)
        if pending is None:
            return ConfirmationOutcome(state=ConfirmationState.NONE)

        if current_message.role == MessageRole.USER:
            confirmed = await self.classifier.classify_affirmative(current_message.text)
            value = CONFIRM if confirmed else DENY
        else:
            value = self._button_value(current_message, pending.invocation.tool_call_id)
            if value is None:
                # Not an answer to this confirmation; it stays pending.
                return ConfirmationOutcome(state=ConfirmationState.PENDING)

        pending.invocation.state = InvocationState.RESULT
        pending.invocation.result = {"result": value, "message": pending.message.text}
        await self.message_store.update_tool_invocations(
            pending.message.id, pending.message.tool_invocations
        )

        state = (
            ConfirmationState.RESOLVED_CONFIRM if value == CONFIRM
            else ConfirmationState.RESOLVED_DENY
        )
        logger.info(
            f"[Confirmation] {pending.invocation.tool_call_id} resolved: {value}"
        )
        return ConfirmationOutcome(
            state=state,
            confirmation_handled=state == ConfirmationState.RESOLVED_CONFIRM,
            updates=[ToolUpdate(tool_call_id=pending.invocation.tool_call_id, result=value)],
        )

    @staticmethod
    def _button_value(message: Message, tool_call_id: str) -> Optional[str]:
        for inv in message.tool_invocations:
            if (
                _is_confirmation(inv)
                and inv.tool_call_id == tool_call_id
                and inv.state == InvocationState.RESULT
            ):
                return _result_value(inv.result) or DENY
        return None
