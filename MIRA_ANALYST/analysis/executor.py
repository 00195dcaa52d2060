"""Tool-calling conversation loop driving the model through sandbox rounds."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Sequence

from MIRA_ANALYST.analysis.policy import Accept, evaluate_artifact_policy
from MIRA_ANALYST.analysis.state import LoopState, RunState
from MIRA_ANALYST.runtime.dispatcher import ToolDispatcher
from MIRA_ANALYST.runtime.errors import ModelUnavailable
from MIRA_ANALYST.runtime.event_log import RunEventLog

logger = logging.getLogger(__name__)

Handler = Callable[[Any, RunState, ToolDispatcher, RunEventLog], Awaitable[None]]


class AnalysisExecutor:
    """Runs the bounded chat loop as a state machine over :class:`LoopState`.

    Each round sends exactly one outgoing turn (the task prompt, a batch of
    tool results, or a corrective directive) and classifies the reply. The
    round budget is checked in one place, on entry to ``AWAITING_MODEL``.
    """

    def __init__(
        self,
        gemini_client: Any,
        min_charts: int = 3,
        max_rounds: int = 10,
        event_log: RunEventLog | None = None,
    ) -> None:
        self.gemini = gemini_client
        self.min_charts = min_charts
        self.max_rounds = max_rounds
        self.event_log = event_log or RunEventLog()
        self._handlers: Dict[LoopState, Handler] = {
            LoopState.AWAITING_MODEL: self._await_model,
            LoopState.TOOL_CALLS_PENDING: self._dispatch_tools,
            LoopState.NATURAL_LANGUAGE_RECEIVED: self._evaluate_text,
        }

    async def run(
        self,
        initial_prompt: str,
        dispatcher: ToolDispatcher,
        tools: Sequence[Dict[str, Any]],
        event_log: RunEventLog | None = None,
    ) -> RunState:
        events = event_log or self.event_log
        chat = self.gemini.start_chat(tools)
        state = RunState(max_rounds=self.max_rounds, outgoing=initial_prompt)
        while not state.terminated:
            await self._handlers[state.loop_state](chat, state, dispatcher, events)
        logger.info("Loop finished after %d round(s) with %d chart(s)", state.round, state.artifact_count)
        return state

    async def _await_model(self, chat: Any, state: RunState, _: ToolDispatcher, events: RunEventLog) -> None:
        if state.remaining_rounds <= 0:
            logger.warning("Round budget of %d exhausted; terminating", state.max_rounds)
            state.advance(LoopState.TERMINATED)
            return

        after_directive = state.forced_continue
        state.start_round()
        logger.info("LLM round %d/%d", state.round, state.max_rounds)
        events.record(
            "round_started",
            {"round": state.round, "charts": state.artifact_count, "after_directive": after_directive},
        )
        try:
            reply = await chat.send(state.outgoing)
        except Exception as exc:  # pylint: disable=broad-except
            raise ModelUnavailable(f"Model call failed in round {state.round}: {exc}") from exc
        state.reply = reply

        if reply.tool_calls:
            state.advance(LoopState.TOOL_CALLS_PENDING)
        else:
            state.advance(LoopState.NATURAL_LANGUAGE_RECEIVED)

    async def _dispatch_tools(self, _: Any, state: RunState, dispatcher: ToolDispatcher, __: RunEventLog) -> None:
        reply = state.reply
        logger.info("Tool calls (%d)", len(reply.tool_calls))
        if reply.text:
            state.last_text = reply.text
        state.outgoing = await dispatcher.dispatch_all(reply.tool_calls, state)
        state.advance(LoopState.AWAITING_MODEL)

    async def _evaluate_text(self, _: Any, state: RunState, __: ToolDispatcher, events: RunEventLog) -> None:
        text = (state.reply.text or "").strip()
        logger.info("Non-tool assistant content length: %d", len(text))
        if text:
            state.last_text = text

        decision = evaluate_artifact_policy(state.artifact_count, self.min_charts, state.remaining_rounds)
        events.record(
            "policy_decision",
            {
                "round": state.round,
                "charts": state.artifact_count,
                "accepted": isinstance(decision, Accept),
            },
        )
        if isinstance(decision, Accept):
            state.final_text = text or state.last_text
            state.advance(LoopState.TERMINATED)
            return

        logger.warning(
            "Assistant tried to finish with %d chart(s); requesting %d more",
            state.artifact_count,
            decision.missing,
        )
        state.outgoing = decision.directive
        state.issue_directive()
        state.advance(LoopState.AWAITING_MODEL)
