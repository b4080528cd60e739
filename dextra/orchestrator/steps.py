"""Step Loop - the streaming tool-calling loop shared by chat turns and scheduled runs.

Each step streams one completion. Tool calls in a step run concurrently;
steps run strictly one after another. The loop ends when the model stops
calling tools, when a client tool (a confirmation ask) is pending, when
the step budget is spent, or when the wall-clock budget runs out.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..constants import MAX_TURN_STEPS, TURN_TIMEOUT_S
from ..errors import NoSuchToolError, ToolArgumentsError
from ..llm.base import ToolCall, Usage
from ..models import InvocationState, Message, MessageRole, ToolInvocation, UserProfile
from ..protocols import LLMClientProtocol
from ..streaming.models import (
    AgentEvent,
    create_error_event,
    create_message_chunk_event,
    create_tool_call_event,
    create_tool_result_event,
)
from ..tools.executor import ToolExecutor, failure_result, result_to_content
from ..tools.models import ToolKind, ToolSpec
from .repair import ArgumentRepairer

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred"
AWAITING_CONFIRMATION_ERROR = "awaiting confirmation"


class _StepTimeout(Exception):
    pass


@dataclass
class StepLoopState:
    """What the loop produced. Filled in while the events are consumed."""
    messages: List[Message] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    steps: int = 0
    executed_tools: int = 0
    pending_client_call: bool = False
    error: Optional[str] = None


@dataclass
class _CallOutcome:
    call: ToolCall
    result: Any
    executed: bool


class StepLoop:
    """
    Usage:
        loop = StepLoop(llm_client, tool_executor, repairer)
        state = StepLoopState()
        async for event in loop.run(system_prompt, history, tools, user, cid, state):
            ...
        # state.messages now holds one assistant message per step
    """

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        tool_executor: ToolExecutor,
        repairer: ArgumentRepairer,
        max_steps: int = MAX_TURN_STEPS,
        timeout: float = TURN_TIMEOUT_S,
    ):
        self.llm_client = llm_client
        self.tool_executor = tool_executor
        self.repairer = repairer
        self.max_steps = max_steps
        self.timeout = timeout

    async def run(
        self,
        system_prompt: str,
        history: List[Dict[str, Any]],
        tools: List[ToolSpec],
        user: UserProfile,
        conversation_id: str,
        state: StepLoopState,
    ) -> AsyncIterator[AgentEvent]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        transcript: List[Dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            *history,
        ]
        tools_by_name = {tool.name: tool for tool in tools}
        tool_schemas = [tool.to_openai_schema() for tool in tools] or None

        for step in range(self.max_steps):
            state.steps = step + 1
            assistant = Message(conversation_id=conversation_id, role=MessageRole.ASSISTANT, content="")
            state.messages.append(assistant)
            tool_calls: List[ToolCall] = []
            text = ""

            try:
                stream = self.llm_client.stream_completion(
                    messages=transcript, tools=tool_schemas
                ).__aiter__()
                while True:
                    try:
                        chunk = await self._next_chunk(stream, deadline)
                    except StopAsyncIteration:
                        break
                    if chunk.content:
                        text += chunk.content
                        assistant.content = text
                        yield create_message_chunk_event(chunk.content, assistant.id)
                    if chunk.tool_calls:
                        tool_calls.extend(chunk.tool_calls)
                    if chunk.usage:
                        state.usage = state.usage + chunk.usage
            except _StepTimeout:
                state.error = "timeout"
                logger.warning(f"[Turn] Step {step + 1} timed out after {self.timeout}s")
                yield create_error_event("The request timed out", "TimeoutError")
                return
            except Exception as e:
                state.error = "llm_error"
                logger.error(f"[Turn] LLM stream failed: {e}", exc_info=True)
                yield create_error_event(GENERIC_ERROR_MESSAGE, type(e).__name__)
                return

            if not tool_calls:
                return

            try:
                self._check_known(tool_calls, tools_by_name)
            except NoSuchToolError as e:
                state.error = "no_such_tool"
                logger.warning(f"[Turn] {e}")
                yield create_error_event(
                    f"The requested action is not supported: {e.tool_name}",
                    "NoSuchToolError",
                )
                return

            server_calls = [c for c in tool_calls if tools_by_name[c.name].kind == ToolKind.SERVER]
            client_calls = [c for c in tool_calls if tools_by_name[c.name].kind == ToolKind.CLIENT]

            # A gated tool never runs while its confirmation is still pending.
            held_ids = set()
            if client_calls:
                held_ids = {
                    c.id for c in server_calls if tools_by_name[c.name].confirmation_required
                }
                if held_ids:
                    logger.info(f"[Turn] Holding {len(held_ids)} gated tool call(s) until confirmed")
            runnable = [c for c in server_calls if c.id not in held_ids]

            for call in runnable:
                yield create_tool_call_event(call.name, call.id, call.arguments)

            try:
                outcomes = await self._run_server_calls(
                    runnable, tools_by_name, user, conversation_id, state, deadline
                )
            except asyncio.TimeoutError:
                state.error = "timeout"
                logger.warning(f"[Turn] Tool execution timed out after {self.timeout}s")
                yield create_error_event("The request timed out", "TimeoutError")
                return

            outcomes.extend(
                _CallOutcome(c, failure_result(AWAITING_CONFIRMATION_ERROR), False)
                for c in server_calls
                if c.id in held_ids
            )

            invocations: Dict[str, ToolInvocation] = {}
            for outcome in outcomes:
                invocations[outcome.call.id] = ToolInvocation(
                    tool_call_id=outcome.call.id,
                    tool_name=outcome.call.name,
                    args=outcome.call.arguments,
                    state=InvocationState.RESULT,
                    result=outcome.result,
                )
                success = not (isinstance(outcome.result, dict) and outcome.result.get("success") is False)
                yield create_tool_result_event(
                    outcome.call.name, outcome.call.id, outcome.result, success=success
                )

            for call in client_calls:
                invocations[call.id] = ToolInvocation(
                    tool_call_id=call.id,
                    tool_name=call.name,
                    args=call.arguments,
                    state=InvocationState.CALL,
                )
                state.pending_client_call = True
                yield create_tool_call_event(call.name, call.id, call.arguments)

            assistant.tool_invocations = [invocations[c.id] for c in tool_calls]

            if state.pending_client_call:
                logger.info("[Turn] Waiting for the user to confirm")
                return

            self._extend_transcript(transcript, text, outcomes)

        logger.info(f"[Turn] Step budget of {self.max_steps} exhausted")

    @staticmethod
    async def _next_chunk(stream, deadline: float):
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise _StepTimeout()
        try:
            return await asyncio.wait_for(stream.__anext__(), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise _StepTimeout() from e

    @staticmethod
    def _check_known(tool_calls: List[ToolCall], tools_by_name: Dict[str, ToolSpec]) -> None:
        for call in tool_calls:
            if call.name not in tools_by_name:
                raise NoSuchToolError(call.name, list(tools_by_name))

    async def _run_server_calls(
        self,
        calls: List[ToolCall],
        tools_by_name: Dict[str, ToolSpec],
        user: UserProfile,
        conversation_id: str,
        state: StepLoopState,
        deadline: float,
    ) -> List[_CallOutcome]:
        if not calls:
            return []
        remaining = max(deadline - asyncio.get_running_loop().time(), 0.001)
        results = await asyncio.wait_for(
            asyncio.gather(
                *[
                    self._run_call(tools_by_name[call.name], call, user, conversation_id, state)
                    for call in calls
                ],
                return_exceptions=True,
            ),
            timeout=remaining,
        )

        outcomes = []
        for call, result in zip(calls, results):
            if isinstance(result, Exception):
                logger.error(f"[Turn] Tool '{call.name}' crashed: {result}", exc_info=result)
                outcomes.append(_CallOutcome(call, failure_result(str(result)), False))
            else:
                outcomes.append(result)
        state.executed_tools += sum(1 for o in outcomes if o.executed)
        return outcomes

    async def _run_call(
        self,
        tool: ToolSpec,
        call: ToolCall,
        user: UserProfile,
        conversation_id: str,
        state: StepLoopState,
    ) -> _CallOutcome:
        context = self.tool_executor.build_context(
            tool, user.user_id, conversation_id, user.wallet_public_key
        )
        try:
            return _CallOutcome(call, await self.tool_executor.execute(tool, call, context), True)
        except ToolArgumentsError as e:
            first_error = e

        repair = await self.repairer.repair(tool, call, first_error.detail)
        state.usage = state.usage + repair.usage
        if not repair.repaired:
            return _CallOutcome(call, failure_result(str(first_error)), False)

        repaired = ToolCall(id=call.id, name=call.name, arguments=repair.arguments)
        try:
            return _CallOutcome(repaired, await self.tool_executor.execute(tool, repaired, context), True)
        except ToolArgumentsError as e:
            logger.warning(f"[Repair] Repaired arguments still invalid for '{tool.name}': {e.detail}")
            return _CallOutcome(repaired, failure_result(str(e)), False)

    @staticmethod
    def _extend_transcript(
        transcript: List[Dict[str, Any]],
        text: str,
        outcomes: List[_CallOutcome],
    ) -> None:
        transcript.append({
            "role": "assistant",
            "content": text or None,
            "tool_calls": [
                {
                    "id": o.call.id,
                    "type": "function",
                    "function": {"name": o.call.name, "arguments": json.dumps(o.call.arguments)},
                }
                for o in outcomes
            ],
        })
        for o in outcomes:
            transcript.append({
                "role": "tool",
                "tool_call_id": o.call.id,
                "content": result_to_content(o.result),
            })


def summarize_outcome(state: StepLoopState) -> Tuple[str, List[str]]:
    """Status label and the ids of non-empty messages, for EXECUTION_END."""
    if state.error:
        status = state.error
    elif state.pending_client_call:
        status = "awaiting_confirmation"
    else:
        status = "completed"
    return status, [m.id for m in state.messages if not m.is_empty]
