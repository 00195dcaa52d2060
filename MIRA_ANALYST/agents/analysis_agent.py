"""Data analysis agent coordinating the sandbox loop and report extraction."""
from __future__ import annotations

import asyncio
import logging

from MIRA_ANALYST.agents.prompts import build_initial_prompt
from MIRA_ANALYST.analysis.executor import AnalysisExecutor
from MIRA_ANALYST.interfaces.agent import Agent
from MIRA_ANALYST.pipeline.models import AnalysisRequest, OrchestratorOutput, RunMetrics
from MIRA_ANALYST.runtime.code_executor import SandboxExecutor
from MIRA_ANALYST.runtime.dispatcher import ToolDispatcher
from MIRA_ANALYST.runtime.event_log import RunEventLog
from MIRA_ANALYST.runtime.tool_calls import run_python_tool
from MIRA_ANALYST.tools.dataset_profile import describe_csv
from MIRA_ANALYST.writing.report_parser import extract_report, resolve_summary

logger = logging.getLogger(__name__)


class DataAnalysisAgent(Agent):
    """Wraps the analysis executor and output extraction as a single agent role."""

    def __init__(
        self,
        analysis_executor: AnalysisExecutor,
        dataset_path: str = "/home/user/data.csv",
        tool_output_cap: int = 2000,
        min_summary_length: int = 50,
        event_log: RunEventLog | None = None,
    ) -> None:
        super().__init__(name="data_analysis_agent", description="Sandboxed CSV analysis with charts")
        self.analysis_executor = analysis_executor
        self.dataset_path = dataset_path
        self.tool_output_cap = tool_output_cap
        self.min_summary_length = min_summary_length
        self.event_log = event_log or RunEventLog()

    async def run(
        self,
        request: AnalysisRequest,
        sandbox: SandboxExecutor,
        external_context: str = "",
        event_log: RunEventLog | None = None,
    ) -> OrchestratorOutput:
        events = event_log or self.event_log
        # pandas parsing is blocking; keep it off the event loop.
        dataset_overview = await asyncio.to_thread(describe_csv, request.dataset)
        prompt = build_initial_prompt(
            user_message=request.user_message,
            history=request.history,
            dataset_path=self.dataset_path,
            min_charts=self.analysis_executor.min_charts,
            external_context=external_context,
            dataset_overview=dataset_overview,
        )
        dispatcher = ToolDispatcher(sandbox, output_cap=self.tool_output_cap, event_log=events)
        state = await self.analysis_executor.run(
            prompt,
            dispatcher,
            [run_python_tool(self.dataset_path)],
            event_log=events,
        )

        raw_text = state.summary_candidate()
        report = extract_report(raw_text)
        summary = resolve_summary(raw_text, report, min_length=self.min_summary_length)
        logger.info("Total charts captured: %d", state.artifact_count)

        return OrchestratorOutput(
            summary=summary,
            artifacts=list(state.artifacts),
            external_context=external_context,
            structured_report=report,
            metrics=RunMetrics(
                rounds=state.round,
                artifact_count=state.artifact_count,
                external_context_used=bool(external_context),
                directives_sent=state.directives_sent,
            ),
        )
