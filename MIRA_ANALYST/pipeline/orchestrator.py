"""End-to-end Mira analysis pipeline."""
from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from MIRA_ANALYST.agents.analysis_agent import DataAnalysisAgent
from MIRA_ANALYST.agents.context_agent import ExternalContextAgent
from MIRA_ANALYST.analysis.executor import AnalysisExecutor
from MIRA_ANALYST.config.settings import Settings, get_settings
from MIRA_ANALYST.pipeline.models import AnalysisRequest, ConversationTurn, OrchestratorOutput
from MIRA_ANALYST.runtime.code_executor import SandboxExecutor
from MIRA_ANALYST.runtime.errors import AnalysisTimeout, FatalError
from MIRA_ANALYST.runtime.event_log import RunEventLog
from MIRA_ANALYST.tools.gemini_client import GeminiClient
from MIRA_ANALYST.tools.search import ExaContentsClient

logger = logging.getLogger(__name__)

SandboxFactory = Callable[[], SandboxExecutor]


class MiraPipeline:
    """High-level controller that wires together all Mira components.

    Components hold no per-run state, so one pipeline may serve concurrent
    ``run()`` calls. Each run gets its own event log and sandbox.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gemini_client: Any = None,
        context_agent: Optional[ExternalContextAgent] = None,
        sandbox_factory: Optional[SandboxFactory] = None,
        log_path: Path | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.log_path = log_path
        self.gemini = gemini_client or GeminiClient(
            api_key=self.settings.google_api_key,
            model_name=self.settings.gemini_model,
        )

        exa_client = ExaContentsClient(self.settings.exa_api_key) if self.settings.exa_api_key else None
        self.context_agent = context_agent or ExternalContextAgent(
            client=exa_client,
            timeout=self.settings.context_timeout,
        )
        self.sandbox_factory = sandbox_factory or self._default_sandbox

        self.analysis_executor = AnalysisExecutor(
            self.gemini,
            min_charts=self.settings.min_charts,
            max_rounds=self.settings.max_rounds,
        )
        self.analysis_agent = DataAnalysisAgent(
            self.analysis_executor,
            dataset_path=self.settings.dataset_path,
            tool_output_cap=self.settings.tool_output_cap,
            min_summary_length=self.settings.min_summary_length,
        )

    def _default_sandbox(self) -> SandboxExecutor:
        return SandboxExecutor(
            api_key=self.settings.e2b_api_key,
            template=self.settings.e2b_template_id,
            sandbox_timeout=self.settings.sandbox_timeout,
            request_timeout=self.settings.sandbox_request_timeout,
            setup_timeout=self.settings.sandbox_setup_timeout,
        )

    def context_budget(self, ceiling: float) -> float:
        """Seconds the context fetch may use out of the run ceiling."""
        return min(self.settings.context_timeout, ceiling * self.settings.context_share)

    async def run(self, request: AnalysisRequest, timeout: Optional[float] = None) -> OrchestratorOutput:
        """Run one analysis within the wall-clock ceiling.

        Raises a :class:`FatalError` subclass on infrastructure failure; never
        returns a partial result.
        """
        ceiling = timeout if timeout is not None else self.settings.run_timeout
        events = RunEventLog(log_path=self.log_path, run_id=uuid.uuid4().hex)
        events.record("run_started", {"dataset_bytes": len(request.dataset), "timeout": ceiling})
        try:
            output = await asyncio.wait_for(
                self._run(request, events, self.context_budget(ceiling)),
                timeout=ceiling,
            )
        except asyncio.TimeoutError as exc:
            events.record("run_failed", {"error": "AnalysisTimeout"})
            raise AnalysisTimeout(f"Analysis exceeded its {ceiling:g}s ceiling") from exc
        except FatalError as exc:
            logger.error("Critical agent error: %s", exc)
            events.record("run_failed", {"error": type(exc).__name__, "message": str(exc)})
            raise
        events.record("run_finished", output.to_dict()["metrics"])
        return output

    async def _run(self, request: AnalysisRequest, events: RunEventLog, context_timeout: float) -> OrchestratorOutput:
        external_context = await self.context_agent.run(
            request.user_message,
            timeout=context_timeout,
            event_log=events,
        )

        sandbox = self.sandbox_factory()
        sandbox_id = await sandbox.open()
        events.record("sandbox_opened", {"sandbox_id": sandbox_id})
        try:
            await sandbox.upload(request.dataset, self.settings.dataset_path)
            return await self.analysis_agent.run(request, sandbox, external_context, event_log=events)
        finally:
            await sandbox.close()
            events.record("sandbox_closed", {"sandbox_id": sandbox_id})


async def run_analysis(
    dataset_bytes: bytes,
    user_message: str,
    conversation_history: Optional[Sequence[ConversationTurn | Mapping[str, Any]]] = None,
    timeout: Optional[float] = None,
    log_path: Path | None = None,
) -> OrchestratorOutput:
    """Analyse one dataset. Raises only :class:`FatalError` subclasses."""
    pipeline = MiraPipeline(log_path=log_path)
    request = AnalysisRequest.build(dataset_bytes, user_message, conversation_history)
    return await pipeline.run(request, timeout=timeout)
