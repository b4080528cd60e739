"""Action Runner - executes due scheduled actions on each cron tick.

Each tick fetches candidate actions, keeps the ones that are due, takes a
lease on each (so an overlapping tick cannot run the same action twice)
and processes them concurrently. One action failing never affects the
others: every run ends in its own bookkeeping update.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ..constants import (
    ACTION_TIMEOUT_S,
    CONFIRMATION_TOOL_NAME,
    CREATE_ACTION_TOOL_NAME,
    CRON_TIMEOUT_S,
    INVALID_TOOL_PREFIX,
)
from ..db import Stores
from ..models import Action, Message, MessageRole, TokenStat, stamp_messages, utcnow
from ..orchestrator.steps import StepLoop, StepLoopState
from ..orchestrator.tool_selector import ToolSelector
from ..orchestrator.turn import select_tools
from ..prompts import build_system_prompt
from ..tools.registry import ToolCatalog
from .policy import evaluate_execution, is_due

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    fetched: int
    processed: int


class ActionRunner:
    """
    Usage:
        runner = ActionRunner(stores, catalog, selector, step_loop)
        result = await runner.run_tick()
    """

    def __init__(
        self,
        stores: Stores,
        catalog: ToolCatalog,
        selector: ToolSelector,
        step_loop: StepLoop,
        action_timeout: float = ACTION_TIMEOUT_S,
        claim_lease: timedelta = timedelta(seconds=CRON_TIMEOUT_S),
    ):
        self.stores = stores
        self.catalog = catalog
        self.selector = selector
        self.step_loop = step_loop
        self.action_timeout = action_timeout
        self.claim_lease = claim_lease

    async def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        now = now or utcnow()
        actions = await self.stores.actions.get_schedulable_actions(now)
        logger.info(f"[Actions] Fetched {len(actions)} actions")

        claimed: List[Action] = []
        for action in actions:
            if not is_due(action, now):
                continue
            if await self.stores.actions.claim_action(action.id, now, self.claim_lease):
                claimed.append(action)
            else:
                logger.info(f"[Actions] Action {action.id} is claimed by another tick")

        results = await asyncio.gather(
            *[self.process_action(action, now) for action in claimed],
            return_exceptions=True,
        )
        for action, result in zip(claimed, results):
            if isinstance(result, Exception):
                logger.error(
                    f"[Actions] Error processing action {action.id}: {result}",
                    exc_info=result,
                )

        logger.info(f"[Actions] Processed {len(claimed)} actions")
        return TickResult(fetched=len(actions), processed=len(claimed))

    async def process_action(self, action: Action, now: Optional[datetime] = None) -> bool:
        """Run one action and record the outcome. Returns the success flag."""
        logger.info(f"[Actions] Processing action {action.id}: {action.description!r}")
        success = False
        try:
            success = await asyncio.wait_for(self._execute(action), timeout=self.action_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[Actions] Action {action.id} timed out after {self.action_timeout}s")
        except Exception as e:
            logger.error(f"[Actions] Failed to process action {action.id}: {e}", exc_info=True)
        finally:
            await self._record(action, success, now or utcnow())
        return success

    async def _execute(self, action: Action) -> bool:
        conversation = await self.stores.conversations.get_conversation(action.conversation_id)
        if conversation is None:
            logger.error(
                f"[Actions] Conversation {action.conversation_id} not found for action {action.id}"
            )
            return False

        profile = await self.stores.users.get_profile(action.user_id)
        if profile is None or not profile.wallet_public_key:
            logger.error(f"[Actions] No active wallet found for user {action.user_id}")
            return False

        history = [{"role": "user", "content": action.description}]
        selection = await self.selector.select(history, suppress_confirmation_tool=True)
        if selection.has_invalid:
            missing = selection.invalid_tools[0][len(INVALID_TOOL_PREFIX):]
            logger.error(f"[Actions] Unsupported tool {missing!r}, skipping action {action.id}")
            return False

        tools = select_tools(
            self.catalog,
            selection,
            suppress_confirmation_tool=True,
            exclude=[CREATE_ACTION_TOOL_NAME, CONFIRMATION_TOOL_NAME],
        )
        system_prompt = build_system_prompt(wallet_public_key=profile.wallet_public_key)

        state = StepLoopState()
        async for _event in self.step_loop.run(
            system_prompt, history, tools, profile, action.conversation_id, state
        ):
            pass

        await self._persist_run(action, state, selection.usage)
        logger.info(
            f"[Actions] Processed action {action.id}: steps={state.steps} "
            f"tools={state.executed_tools} error={state.error}"
        )
        return state.executed_tools > 0

    async def _persist_run(self, action: Action, state: StepLoopState, selector_usage) -> None:
        final = [m for m in state.messages if not m.is_empty]
        if not final:
            return
        latest = await self.stores.messages.latest_created_at(action.conversation_id)
        stamp_messages(final, after=latest)
        saved_ids = await self.stores.messages.create_messages(final)
        await self.stores.conversations.touch_conversation(
            action.conversation_id, final[-1].created_at
        )
        usage = state.usage + selector_usage
        if usage.total_tokens > 0:
            await self.stores.token_stats.create_token_stat(TokenStat(
                user_id=action.user_id,
                message_ids=saved_ids,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            ))

    async def _record(self, action: Action, success: bool, now: datetime) -> None:
        update = evaluate_execution(action, success, now)
        try:
            await self.stores.actions.record_execution(action.id, update.to_fields())
            if update.pause_message:
                logger.info(f"[Actions] Paused action {action.id}")
                notice = Message(
                    conversation_id=action.conversation_id,
                    role=MessageRole.ASSISTANT,
                    content=update.pause_message,
                )
                latest = await self.stores.messages.latest_created_at(action.conversation_id)
                stamp_messages([notice], after=latest)
                await self.stores.messages.create_messages([notice])
        except Exception as e:
            logger.error(
                f"[Actions] Failed to record execution of action {action.id}: {e}",
                exc_info=True,
            )
