"""Routes model tool calls to the sandbox and normalises their results."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from MIRA_ANALYST.analysis.state import RunState
from MIRA_ANALYST.runtime.code_executor import ExecutionResult, SandboxExecutor
from MIRA_ANALYST.runtime.event_log import RunEventLog
from MIRA_ANALYST.runtime.tool_calls import (
    InvalidToolCall,
    RunPythonCall,
    ToolCall,
    ToolResponse,
    parse_tool_call,
)

logger = logging.getLogger(__name__)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


class ToolDispatcher:
    """Executes tool calls against one sandbox and builds model-sized payloads."""

    def __init__(
        self,
        executor: SandboxExecutor,
        output_cap: int = 2000,
        event_log: RunEventLog | None = None,
    ) -> None:
        self.executor = executor
        self.output_cap = output_cap
        self.event_log = event_log or RunEventLog()

    async def dispatch_all(self, calls: Sequence[ToolCall], state: RunState) -> List[ToolResponse]:
        # Cells share one kernel and filesystem; run them in call order.
        responses = []
        for call in calls:
            responses.append(await self.dispatch(call, state))
        return responses

    async def dispatch(self, call: ToolCall, state: RunState) -> ToolResponse:
        parsed = parse_tool_call(call)
        if isinstance(parsed, InvalidToolCall):
            logger.warning("Rejected tool call %r: %s", parsed.name, parsed.message)
            return ToolResponse(
                name=parsed.name,
                payload={
                    "status": "error",
                    "message": parsed.message,
                    "charts_generated": 0,
                    "total_charts_so_far": state.artifact_count,
                },
            )
        return await self._run_python(parsed, state)

    async def _run_python(self, call: RunPythonCall, state: RunState) -> ToolResponse:
        logger.info("Executing %s: %s", call.name, (call.reasoning or "No reasoning provided")[:200])
        try:
            result = await self.executor.execute(call.code)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Tool %r failed: %s", call.name, exc)
            payload = {
                "status": "error",
                "message": str(exc) or type(exc).__name__,
                "charts_generated": 0,
                "total_charts_so_far": state.artifact_count,
            }
            self.event_log.record("tool_executed", {"round": state.round, **payload})
            return ToolResponse(name=call.name, payload=payload)

        state.add_artifacts(result.artifacts)
        payload = self._payload(result, state.artifact_count)
        logger.info(
            "Execution %s: %d chart(s), %d total",
            result.status,
            result.artifact_count,
            state.artifact_count,
        )
        self.event_log.record(
            "tool_executed",
            {
                "round": state.round,
                "status": result.status,
                "charts_generated": result.artifact_count,
                "total_charts_so_far": state.artifact_count,
                "error_name": result.error_name,
            },
        )
        return ToolResponse(name=call.name, payload=payload)

    def _payload(self, result: ExecutionResult, total: int) -> Dict[str, Any]:
        if not result.success:
            return {
                "status": "error",
                "error_name": result.error_name,
                "error_value": _truncate(result.error_value or "", self.output_cap),
                "traceback": _truncate(result.traceback or "", self.output_cap),
                "charts_generated": result.artifact_count,
                "total_charts_so_far": total,
            }
        return {
            "status": "success",
            "stdout": _truncate(result.stdout, self.output_cap),
            "data_preview": _truncate("\n".join(result.text_results), self.output_cap),
            "charts_generated": result.artifact_count,
            "total_charts_so_far": total,
        }
