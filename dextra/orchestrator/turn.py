"""Turn Executor - one interactive chat turn from request to persisted messages.

Flow:
    1. Create the conversation on its first message and persist the user message.
    2. Load recent history and resolve any pending confirmation.
    3. Build the system prompt and the model transcript.
    4. Select tools (confirmation tool suppressed in degen mode or after a confirm).
    5. Run the step loop, streaming events to the caller.
    6. Persist the produced messages and token usage.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from ..constants import CONFIRMATION_TOOL_NAME, INVALID_TOOL_PREFIX, MAX_HISTORY_MESSAGES
from ..db import Stores
from ..errors import ConversationNotFoundError
from ..llm.base import Usage
from ..models import Message, MessageRole, TokenStat, UserProfile, stamp_messages
from ..prompts import build_system_prompt, confirmation_reply_text
from ..protocols import LLMClientProtocol
from ..streaming.models import AgentEvent, EventType, create_error_event
from ..tools.models import ToolSpec
from ..tools.registry import ToolCatalog
from .confirmation import ConfirmationHandler, ConfirmationOutcome, get_confirmation_result
from .steps import StepLoop, StepLoopState, summarize_outcome
from .titles import generate_title
from .tool_selector import ToolSelection, ToolSelector
from .transcript import to_llm_messages

logger = logging.getLogger(__name__)


@dataclass
class TurnRequest:
    """One incoming chat message.

    ``message`` is either a user text message or, for a Confirm / Deny
    button press, the assistant message carrying the resolved
    confirmation invocation.
    """
    user: UserProfile
    conversation_id: str
    message: Message


def attachment_history(messages: List[Message]) -> List[Dict[str, Any]]:
    out = []
    for message in messages:
        for attachment in message.attachments or []:
            out.append({
                "type": attachment.get("contentType") or attachment.get("type"),
                "data": attachment.get("url") or attachment.get("data"),
            })
    return out


def select_tools(
    catalog: ToolCatalog,
    selection: ToolSelection,
    suppress_confirmation_tool: bool,
    exclude: Optional[List[str]] = None,
) -> List[ToolSpec]:
    """Resolve a selection to tools; None means the whole filtered catalog."""
    if selection.tool_group_names is None:
        tools = catalog.available_tools()
    else:
        tools = catalog.resolve_tools_by_name(selection.tool_group_names)
    dropped = set(exclude or ())
    if suppress_confirmation_tool:
        dropped.add(CONFIRMATION_TOOL_NAME)
    return [tool for tool in tools if tool.name not in dropped]


class TurnExecutor:
    """
    Usage:
        executor = TurnExecutor(stores, catalog, selector, confirmations, step_loop, title_llm)
        async for event in executor.run_turn(TurnRequest(user, cid, message)):
            send(event.to_dict())
    """

    def __init__(
        self,
        stores: Stores,
        catalog: ToolCatalog,
        selector: ToolSelector,
        confirmation_handler: ConfirmationHandler,
        step_loop: StepLoop,
        title_llm: LLMClientProtocol,
        max_history_messages: int = MAX_HISTORY_MESSAGES,
    ):
        self.stores = stores
        self.catalog = catalog
        self.selector = selector
        self.confirmation_handler = confirmation_handler
        self.step_loop = step_loop
        self.title_llm = title_llm
        self.max_history_messages = max_history_messages

    async def run_turn(self, request: TurnRequest) -> AsyncIterator[AgentEvent]:
        sequence = 0
        async for event in self._run_turn(request):
            event.sequence = sequence
            sequence += 1
            yield event

    async def _run_turn(self, request: TurnRequest) -> AsyncIterator[AgentEvent]:
        user = request.user
        cid = request.conversation_id
        incoming = request.message

        yield AgentEvent(
            type=EventType.EXECUTION_START,
            data={"conversation_id": cid, "user_id": user.user_id},
        )

        try:
            history, user_message = await self._prepare_conversation(user, cid, incoming)
        except ConversationNotFoundError as e:
            yield create_error_event(str(e), "ConversationNotFoundError")
            return

        outcome = await self.confirmation_handler.handle(incoming, history)
        for update in outcome.updates:
            yield AgentEvent(type=EventType.TOOL_UPDATE, data=update.to_dict())

        llm_history = self._build_llm_history(history, incoming, outcome)

        suppress = bool(user.degen_mode or outcome.confirmation_handled)
        selection = await self.selector.select(llm_history, suppress_confirmation_tool=suppress)
        if selection.invalid_tools:
            unsupported = [n[len(INVALID_TOOL_PREFIX):] for n in selection.invalid_tools]
            yield AgentEvent(
                type=EventType.WARNING,
                data={
                    "message": "Some requested capabilities are not supported",
                    "unsupported_tools": unsupported,
                },
            )
        tools = select_tools(self.catalog, selection, suppress)

        system_prompt = build_system_prompt(
            wallet_public_key=user.wallet_public_key,
            user_id=user.user_id,
            conversation_id=cid,
            degen_mode=user.degen_mode,
            attachments=attachment_history(history),
        )

        state = StepLoopState()
        async for event in self.step_loop.run(
            system_prompt, llm_history, tools, user, cid, state
        ):
            yield event

        saved_ids = await self._persist(user, cid, user_message, state, selection.usage)

        status, _ = summarize_outcome(state)
        yield AgentEvent(
            type=EventType.EXECUTION_END,
            data={
                "conversation_id": cid,
                "status": status,
                "message_ids": saved_ids,
                "usage": (state.usage + selection.usage).to_dict(),
            },
        )

    async def _prepare_conversation(
        self,
        user: UserProfile,
        cid: str,
        incoming: Message,
    ):
        conversation = await self.stores.conversations.get_conversation(cid)
        if conversation is not None and conversation.user_id != user.user_id:
            raise ConversationNotFoundError(f"Conversation {cid} not found")

        if conversation is None:
            if incoming.role != MessageRole.USER:
                raise ConversationNotFoundError(f"Conversation {cid} not found")
            title = await generate_title(self.title_llm, incoming.text)
            await self.stores.conversations.create_conversation(cid, user.user_id, title)
            history: List[Message] = []
        else:
            history = await self.stores.messages.get_recent_messages(
                cid, self.max_history_messages
            )

        user_message = None
        if incoming.role == MessageRole.USER:
            user_message = Message(
                conversation_id=cid,
                role=MessageRole.USER,
                content=incoming.content,
                attachments=incoming.attachments,
                id=incoming.id,
            )
            latest = history[-1].created_at if history else None
            stamp_messages([user_message], after=latest)
            await self.stores.messages.create_messages([user_message])
        return history, user_message

    @staticmethod
    def _build_llm_history(
        history: List[Message],
        incoming: Message,
        outcome: ConfirmationOutcome,
    ) -> List[Dict[str, Any]]:
        llm_history = to_llm_messages(history)
        button = get_confirmation_result(incoming)
        if button is not None:
            llm_history.append({"role": "user", "content": confirmation_reply_text(button)})
        elif incoming.role == MessageRole.USER:
            llm_history.append({"role": "user", "content": incoming.text})
        return llm_history

    async def _persist(
        self,
        user: UserProfile,
        cid: str,
        user_message: Optional[Message],
        state: StepLoopState,
        selector_usage: Usage,
    ) -> List[str]:
        final = [m for m in state.messages if not m.is_empty]
        try:
            saved_ids: List[str] = []
            if final:
                after = user_message.created_at if user_message else None
                if after is None:
                    after = await self.stores.messages.latest_created_at(cid)
                stamp_messages(final, after=after)
                saved_ids = await self.stores.messages.create_messages(final)
                await self.stores.conversations.touch_conversation(cid, final[-1].created_at)

            usage = state.usage + selector_usage
            if usage.total_tokens > 0:
                ids = ([user_message.id] if user_message else []) + saved_ids
                await self.stores.token_stats.create_token_stat(TokenStat(
                    user_id=user.user_id,
                    message_ids=ids,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                    total_tokens=usage.total_tokens,
                ))
            return saved_ids
        except Exception as e:
            logger.error(f"[Turn] Failed to save messages for {cid}: {e}", exc_info=True)
            return []
