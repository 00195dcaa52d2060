"""End-to-end tests for the Mira pipeline with fake model and sandbox."""
from __future__ import annotations

import asyncio
import base64
import json
import threading
import time
from types import SimpleNamespace

import pytest

from MIRA_ANALYST.agents import analysis_agent
from MIRA_ANALYST.agents.context_agent import ExternalContextAgent
from MIRA_ANALYST.config.settings import Settings
from MIRA_ANALYST.pipeline.models import AnalysisRequest, ConversationTurn
from MIRA_ANALYST.pipeline.orchestrator import MiraPipeline
from MIRA_ANALYST.runtime.code_executor import SandboxExecutor
from MIRA_ANALYST.runtime.errors import (
    AnalysisTimeout,
    ModelUnavailable,
    SandboxSetupTimeout,
    UploadFailed,
)
from MIRA_ANALYST.runtime.tool_calls import ModelReply, ToolCall
from MIRA_ANALYST.writing.report_parser import FALLBACK_SUMMARY

DATASET = b"date,room,price\n2024-01-01,A,100\n2024-01-02,B,120\n2024-01-03,A,90\n2024-01-04,C,150\n2024-01-05,B,110\n"
PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nchart").decode("ascii")


def chart_execution() -> SimpleNamespace:
    return SimpleNamespace(
        logs=SimpleNamespace(stdout=["saved\n"], stderr=[]),
        results=[SimpleNamespace(png=PNG_B64, text=None)],
        error=None,
    )


class FakeE2BSandbox:
    def __init__(self, upload_fails: bool = False) -> None:
        self.sandbox_id = "sbx-pipeline"
        self.kill_calls = 0
        self.uploaded: dict[str, bytes] = {}
        self.upload_fails = upload_fails
        self.files = self

    async def write(self, path: str, data: bytes) -> None:
        if self.upload_fails:
            raise OSError("disk full")
        self.uploaded[path] = data

    async def run_code(self, code: str):
        return chart_execution()

    async def kill(self) -> None:
        self.kill_calls += 1


class FakeChat:
    def __init__(self, replies, default: ModelReply | None = None, delay: float = 0.0) -> None:
        self.replies = list(replies)
        self.default = default or ModelReply(text="")
        self.delay = delay
        self.sent: list = []

    async def send(self, message):
        self.sent.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return self.default


class FakeGemini:
    def __init__(self, chat: FakeChat) -> None:
        self.chat = chat

    def start_chat(self, tools):
        return self.chat


def make_pipeline(
    chat: FakeChat,
    sandbox: FakeE2BSandbox,
    setup_delay: float = 0.0,
    log_path=None,
    context_agent: ExternalContextAgent | None = None,
) -> MiraPipeline:
    settings = Settings(google_api_key="google-key", e2b_api_key="e2b-key", sandbox_setup_timeout=0.05)

    async def create(**_):
        if setup_delay:
            await asyncio.sleep(setup_delay)
        return sandbox

    return MiraPipeline(
        settings=settings,
        gemini_client=FakeGemini(chat),
        context_agent=context_agent or ExternalContextAgent(client=None),
        sandbox_factory=lambda: SandboxExecutor(
            api_key=settings.e2b_api_key,
            setup_timeout=settings.sandbox_setup_timeout,
            create=create,
        ),
        log_path=log_path,
    )


def chart_call(n: int) -> ToolCall:
    return ToolCall(name="run_python", args={"code": f"plot_{n}()\nplt.show()", "reasoning": f"chart {n}"})


def final_report_json() -> str:
    return json.dumps(
        {
            "summary": "Average nightly price is 114 across 5 bookings, with room C the most expensive at 150.",
            "kpis": ["Bookings: 5", "Average price: 114", "Max price: 150", "Rooms: 3"],
            "charts": [
                {"title": "Price over time", "bullets": ["Peak on Jan 4 at 150"]},
                {"title": "Price distribution", "bullets": ["Range 90-150"]},
                {"title": "Average by room", "bullets": ["Room C highest"]},
            ],
            "nextSteps": ["Review room C pricing"],
        }
    )


def test_three_charts_then_structured_report() -> None:
    sandbox = FakeE2BSandbox()
    chat = FakeChat(
        [
            ModelReply(tool_calls=[chart_call(1), chart_call(2), chart_call(3)]),
            ModelReply(text=final_report_json()),
        ]
    )
    pipeline = make_pipeline(chat, sandbox)

    output = asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Which rooms earn the most?")))

    assert len(output.artifacts) == 3
    assert len(output.structured_report.charts) == 3
    assert output.external_context == ""
    assert output.summary.startswith("Average nightly price is 114")
    assert output.structured_report.next_steps == ["Review room C pricing"]
    assert output.metrics.rounds == 2
    assert output.metrics.artifact_count == 3
    assert output.metrics.external_context_used is False
    assert sandbox.uploaded == {"/home/user/data.csv": DATASET}
    assert sandbox.kill_calls == 1
    assert "5 rows x 3 columns" in chat.sent[0]


def test_history_is_framed_in_first_prompt() -> None:
    sandbox = FakeE2BSandbox()
    chat = FakeChat([], default=ModelReply(text="No charts from me."))
    pipeline = make_pipeline(chat, sandbox)
    request = AnalysisRequest.build(
        DATASET,
        "Now focus on room B",
        [{"role": "user", "content": "Uploaded CSV file"}, ConversationTurn("assistant", "Room A leads.")],
    )

    asyncio.run(pipeline.run(request))

    first = chat.sent[0]
    assert "Conversation so far:\nUser: Uploaded CSV file\nAssistant: Room A leads." in first
    assert first.endswith("Current user request:\nNow focus on room B")


def test_model_never_charts_terminates_with_fallback() -> None:
    sandbox = FakeE2BSandbox()
    chat = FakeChat([], default=ModelReply(text="All good."))
    pipeline = make_pipeline(chat, sandbox)

    output = asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize")))

    assert output.metrics.rounds == 10
    assert output.metrics.directives_sent == 9
    assert output.artifacts == []
    assert output.summary == FALLBACK_SUMMARY
    assert output.structured_report is None
    assert sandbox.kill_calls == 1


def test_fatal_error_mid_loop_still_tears_down() -> None:
    sandbox = FakeE2BSandbox()
    chat = FakeChat([ModelReply(tool_calls=[chart_call(1)]), RuntimeError("model backend down")])
    pipeline = make_pipeline(chat, sandbox)

    with pytest.raises(ModelUnavailable):
        asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize")))

    assert sandbox.kill_calls == 1


def test_upload_failure_is_fatal_and_tears_down() -> None:
    sandbox = FakeE2BSandbox(upload_fails=True)
    chat = FakeChat([])
    pipeline = make_pipeline(chat, sandbox)

    with pytest.raises(UploadFailed):
        asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize")))

    assert chat.sent == []
    assert sandbox.kill_calls == 1


def test_sandbox_setup_timeout_runs_no_rounds() -> None:
    sandbox = FakeE2BSandbox()
    chat = FakeChat([])
    pipeline = make_pipeline(chat, sandbox, setup_delay=1.0)

    with pytest.raises(SandboxSetupTimeout):
        asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize")))

    assert chat.sent == []
    assert sandbox.kill_calls == 0


def test_overall_ceiling_raises_typed_timeout() -> None:
    sandbox = FakeE2BSandbox()
    chat = FakeChat([], delay=1.0)
    pipeline = make_pipeline(chat, sandbox)

    with pytest.raises(AnalysisTimeout):
        asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize"), timeout=0.1))

    assert sandbox.kill_calls == 1


def test_event_log_records_run(tmp_path) -> None:
    log_path = tmp_path / "events.jsonl"
    sandbox = FakeE2BSandbox()
    chat = FakeChat(
        [
            ModelReply(tool_calls=[chart_call(1), chart_call(2), chart_call(3)]),
            ModelReply(text=final_report_json()),
        ]
    )
    pipeline = make_pipeline(chat, sandbox, log_path=log_path)

    asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize")))

    events = [json.loads(line)["event"] for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert events[0] == "run_started"
    assert events.count("tool_executed") == 3
    assert events[-2:] == ["sandbox_closed", "run_finished"]


def test_event_log_marks_rounds_after_directive(tmp_path) -> None:
    log_path = tmp_path / "events.jsonl"
    chat = FakeChat([ModelReply(text="Done already."), ModelReply(text="Still no charts.")], default=ModelReply(text="x"))
    pipeline = make_pipeline(chat, FakeE2BSandbox(), log_path=log_path)

    asyncio.run(pipeline.run(AnalysisRequest.build(DATASET, "Summarize")))

    entries = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    rounds = [e["payload"] for e in entries if e["event"] == "round_started"]
    assert rounds[0]["after_directive"] is False
    assert all(r["after_directive"] for r in rounds[1:])


class PerChatGemini:
    """Hands every run its own scripted chat."""

    def start_chat(self, tools):
        return FakeChat(
            [
                ModelReply(tool_calls=[chart_call(1), chart_call(2), chart_call(3)]),
                ModelReply(text=final_report_json()),
            ]
        )


def test_concurrent_runs_keep_separate_run_ids(tmp_path) -> None:
    log_path = tmp_path / "events.jsonl"
    sandboxes: list[FakeE2BSandbox] = []

    async def create(**_):
        await asyncio.sleep(0.01)
        sandboxes.append(FakeE2BSandbox())
        return sandboxes[-1]

    settings = Settings(google_api_key="google-key", e2b_api_key="e2b-key")
    pipeline = MiraPipeline(
        settings=settings,
        gemini_client=PerChatGemini(),
        context_agent=ExternalContextAgent(client=None),
        sandbox_factory=lambda: SandboxExecutor(api_key="e2b-key", create=create),
        log_path=log_path,
    )

    async def both():
        return await asyncio.gather(
            pipeline.run(AnalysisRequest.build(DATASET, "First request")),
            pipeline.run(AnalysisRequest.build(DATASET, "Second request")),
        )

    first, second = asyncio.run(both())

    assert len(first.artifacts) == len(second.artifacts) == 3
    assert [s.kill_calls for s in sandboxes] == [1, 1]
    entries = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    finished = [e["run_id"] for e in entries if e["event"] == "run_finished"]
    assert len(set(finished)) == 2
    for run_id in finished:
        events = [e["event"] for e in entries if e["run_id"] == run_id]
        assert events[0] == "run_started"
        assert events.count("tool_executed") == 3
        assert events.count("sandbox_closed") == 1
        assert events[-1] == "run_finished"


class SlowExaClient:
    def get_contents(self, urls):
        time.sleep(0.6)
        return [{"url": urls[0], "title": "Late", "text": "Too slow to matter"}]


def test_context_fetch_is_bounded_by_share_of_ceiling() -> None:
    chat = FakeChat(
        [
            ModelReply(tool_calls=[chart_call(1), chart_call(2), chart_call(3)]),
            ModelReply(text=final_report_json()),
        ]
    )
    sandbox = FakeE2BSandbox()
    pipeline = make_pipeline(chat, sandbox, context_agent=ExternalContextAgent(SlowExaClient(), timeout=600.0))

    output = asyncio.run(
        pipeline.run(AnalysisRequest.build(DATASET, "Compare with https://example.com"), timeout=1.0)
    )

    assert output.external_context == ""
    assert len(output.artifacts) == 3
    assert sandbox.kill_calls == 1
    assert pipeline.context_budget(300.0) == 150.0
    assert pipeline.context_budget(5000.0) == 600.0


def test_dataset_profiling_runs_off_the_event_loop(monkeypatch) -> None:
    threads: list[int] = []

    def recording_profile(data):
        threads.append(threading.get_ident())
        return "5 rows x 3 columns"

    monkeypatch.setattr(analysis_agent, "describe_csv", recording_profile)
    chat = FakeChat([], default=ModelReply(text="No charts."))
    pipeline = make_pipeline(chat, FakeE2BSandbox())

    async def run_and_capture_loop_thread():
        loop_thread = threading.get_ident()
        await pipeline.run(AnalysisRequest.build(DATASET, "Summarize"))
        return loop_thread

    loop_thread = asyncio.run(run_and_capture_loop_thread())

    assert len(threads) == 1
    assert threads[0] != loop_thread
    assert "5 rows x 3 columns" in chat.sent[0]
