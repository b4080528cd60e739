"""Tests for dextra.actions.runner

Tests cover:
- run_tick(): due filtering, claims, fan-out, isolation of failures
- Success means at least one executed tool
- Missing conversation / wallet / unsupported tool count as failures
- Pause notices, timeouts and excluded tools
- Hourly cadence across ticks
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from dextra.actions import ActionRunner, TickResult
from dextra.llm.base import StreamChunk, ToolCall, Usage
from dextra.models import Action, Conversation, MessageRole, UserProfile
from dextra.orchestrator.repair import ArgumentRepairer
from dextra.orchestrator.steps import StepLoop
from dextra.orchestrator.tool_selector import ToolSelector
from dextra.tools import ToolExecutor
from dextra.tools.builtin import create_action

from conftest import FakeLLMClient, make_catalog, make_stores, text_stream, tool_stream


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
USER = UserProfile(user_id="user-1", wallet_public_key="Wa11et111")


class _HangingLLM(FakeLLMClient):
    async def _stream_api(self, messages, tools=None, **kwargs):
        await asyncio.sleep(10)
        yield StreamChunk(content="late")


def _action(action_id="act-1", **overrides):
    fields = dict(
        id=action_id,
        user_id=USER.user_id,
        conversation_id="conv-1",
        name="SOL price",
        description="Check the SOL price (Does not require confirmation)",
        frequency=3600,
    )
    fields.update(overrides)
    return Action(**fields)


def _price_run(call_id="c1"):
    """Streams for one successful run: a price lookup, then a summary."""
    return [
        tool_stream(ToolCall(id=call_id, name="get_price", arguments={"mint": "So111"})),
        text_stream("SOL is $1.23", Usage(prompt_tokens=10, completion_tokens=2, total_tokens=12)),
    ]


class _Harness:

    def __init__(self, actions, streams=None, selector_replies=None, llm=None, action_timeout=5):
        self.stores = make_stores(profiles=[USER], actions=actions)
        self.stores.conversations.conversations["conv-1"] = Conversation(
            id="conv-1", user_id=USER.user_id, title="Automations"
        )
        self.catalog = make_catalog()
        self.catalog.register(create_action)
        self.selector_llm = FakeLLMClient(responses=selector_replies or [])
        self.main_llm = llm or FakeLLMClient(streams=streams or [])
        self.runner = ActionRunner(
            stores=self.stores,
            catalog=self.catalog,
            selector=ToolSelector(self.selector_llm, self.catalog),
            step_loop=StepLoop(self.main_llm, ToolExecutor(env={}), ArgumentRepairer(FakeLLMClient())),
            action_timeout=action_timeout,
        )

    def action(self, action_id="act-1"):
        return self.stores.actions.actions[action_id]

    def conversation_messages(self, cid="conv-1"):
        return self.stores.messages.for_conversation(cid)


# =========================================================================
# Tick
# =========================================================================


class TestRunTick:

    @pytest.mark.asyncio
    async def test_successful_run(self):
        h = _Harness([_action()], streams=_price_run())

        result = await h.runner.run_tick(NOW)

        assert result == TickResult(fetched=1, processed=1)
        action = h.action()
        assert action.times_executed == 1
        assert action.last_executed_at == NOW
        assert action.last_success_at == NOW
        assert action.last_failure_at is None
        assert action.claimed_at is None

        stored = h.conversation_messages()
        assert [m.role for m in stored] == [MessageRole.ASSISTANT, MessageRole.ASSISTANT]
        assert stored[0].tool_invocations[0].tool_name == "get_price"
        assert stored[0].created_at < stored[1].created_at
        assert h.stores.token_stats.stats[0].total_tokens == 12

    @pytest.mark.asyncio
    async def test_description_replayed_as_user_message(self):
        h = _Harness([_action()], streams=_price_run())

        await h.runner.run_tick(NOW)

        sent = h.main_llm.stream_calls[0]["messages"]
        assert sent[1:] == [
            {"role": "user", "content": "Check the SOL price (Does not require confirmation)"}
        ]
        assert "User Solana wallet public key: Wa11et111" in sent[0]["content"]
        assert h.selector_llm.calls[0]["messages"][1:] == sent[1:]

    @pytest.mark.asyncio
    async def test_confirmation_and_create_action_excluded(self):
        h = _Harness([_action()], streams=_price_run())

        await h.runner.run_tick(NOW)

        offered = [t["function"]["name"] for t in h.main_llm.stream_calls[0]["tools"]]
        assert "create_action" not in offered
        assert "ask_for_confirmation" not in offered
        assert "get_price" in offered

    @pytest.mark.asyncio
    async def test_not_due_skipped(self):
        h = _Harness([_action(last_executed_at=NOW - timedelta(minutes=10))])

        result = await h.runner.run_tick(NOW)

        assert result == TickResult(fetched=1, processed=0)
        assert h.main_llm.stream_calls == []
        assert h.stores.actions.records == []

    @pytest.mark.asyncio
    async def test_claimed_action_skipped(self):
        h = _Harness([_action(claimed_at=NOW - timedelta(minutes=1))])

        result = await h.runner.run_tick(NOW)

        assert result.processed == 0
        assert h.stores.actions.records == []

    @pytest.mark.asyncio
    async def test_expired_claim_reclaimed(self):
        h = _Harness([_action(claimed_at=NOW - timedelta(hours=1))], streams=_price_run())
        result = await h.runner.run_tick(NOW)
        assert result.processed == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self):
        h = _Harness(
            [_action("act-1"), _action("act-2", user_id="user-2")],
            streams=_price_run(),
        )
        original = h.stores.users.get_profile

        async def get_profile(user_id):
            if user_id == "user-2":
                raise RuntimeError("db down")
            return await original(user_id)

        h.stores.users.get_profile = get_profile

        result = await h.runner.run_tick(NOW)

        assert result.processed == 2
        assert h.action("act-1").last_success_at == NOW
        assert h.action("act-2").last_failure_at == NOW
        assert h.action("act-2").times_executed == 1


# =========================================================================
# Failures
# =========================================================================


class TestFailedRuns:

    @pytest.mark.asyncio
    async def test_text_only_run_is_a_failure(self):
        h = _Harness([_action()], streams=[text_stream("SOL is probably fine")])

        await h.runner.run_tick(NOW)

        action = h.action()
        assert action.last_failure_at == NOW
        assert action.last_success_at is None
        assert action.paused is False
        assert action.times_executed == 1

    @pytest.mark.asyncio
    async def test_missing_conversation(self):
        h = _Harness([_action(conversation_id="gone")])

        await h.runner.run_tick(NOW)

        assert h.action().last_failure_at == NOW
        assert h.main_llm.stream_calls == []

    @pytest.mark.asyncio
    async def test_missing_wallet(self):
        h = _Harness([_action()])
        h.stores.users.profiles["user-1"] = UserProfile(user_id="user-1", wallet_public_key=None)

        await h.runner.run_tick(NOW)

        assert h.action().last_failure_at == NOW
        assert h.selector_llm.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_tool(self):
        h = _Harness(
            [_action()],
            streams=_price_run(),
            selector_replies=['["INVALID_TOOL:bridge_tokens"]'],
        )

        await h.runner.run_tick(NOW)

        assert h.action().last_failure_at == NOW
        assert h.main_llm.stream_calls == []

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self):
        h = _Harness([_action()], llm=_HangingLLM(), action_timeout=0.05)

        await h.runner.run_tick(NOW)

        action = h.action()
        assert action.last_failure_at == NOW
        assert action.claimed_at is None

    @pytest.mark.asyncio
    async def test_record_failure_is_logged_not_raised(self):
        h = _Harness([_action()], streams=_price_run())
        h.stores.actions.record_execution = AsyncMock(side_effect=RuntimeError("db down"))

        result = await h.runner.run_tick(NOW)

        assert result.processed == 1


class TestPauseNotice:

    @pytest.mark.asyncio
    async def test_third_failure_pauses_and_notifies(self):
        h = _Harness([_action(times_executed=2)], streams=[text_stream("nothing to do")])

        await h.runner.run_tick(NOW)

        assert h.action().paused is True
        notice = h.conversation_messages()[-1]
        assert notice.role == MessageRole.ASSISTANT
        assert notice.content == (
            "I've paused action act-1 because it has failed to execute "
            "successfully more than 3 times."
        )

    @pytest.mark.asyncio
    async def test_paused_action_not_fetched_again(self):
        h = _Harness([_action(times_executed=2)], streams=[text_stream("nothing to do")])

        await h.runner.run_tick(NOW)
        result = await h.runner.run_tick(NOW + timedelta(hours=2))

        assert result == TickResult(fetched=0, processed=0)

    @pytest.mark.asyncio
    async def test_second_failure_is_silent(self):
        h = _Harness([_action(times_executed=1)], streams=[text_stream("nothing to do")])

        await h.runner.run_tick(NOW)

        assert h.action().paused is False
        assert all("paused" not in m.text for m in h.conversation_messages())


# =========================================================================
# Cadence
# =========================================================================


class TestHourlyCadence:

    @pytest.mark.asyncio
    async def test_runs_again_only_after_frequency(self):
        h = _Harness([_action()], streams=_price_run("c1") + _price_run("c2"))

        first = await h.runner.run_tick(NOW)
        second = await h.runner.run_tick(NOW + timedelta(minutes=10))
        third = await h.runner.run_tick(NOW + timedelta(seconds=3601))

        assert (first.processed, second.processed, third.processed) == (1, 0, 1)
        action = h.action()
        assert action.times_executed == 2
        assert action.last_executed_at == NOW + timedelta(seconds=3601)

    @pytest.mark.asyncio
    async def test_max_executions_completes(self):
        h = _Harness([_action(max_executions=1)], streams=_price_run())

        await h.runner.run_tick(NOW)
        result = await h.runner.run_tick(NOW + timedelta(hours=2))

        assert h.action().completed is True
        assert result.fetched == 0
