"""Tests for run quality scoring."""
from __future__ import annotations

from MIRA_ANALYST.evaluation import metrics
from MIRA_ANALYST.evaluation.runner import evaluate_analysis_output
from MIRA_ANALYST.pipeline.models import OrchestratorOutput, RunMetrics
from MIRA_ANALYST.runtime.code_executor import Artifact
from MIRA_ANALYST.writing.report_parser import FALLBACK_SUMMARY, ChartInsight, StructuredReport


def test_chart_scores() -> None:
    assert metrics.chart_volume(0) == 0.0
    assert metrics.chart_volume(3) == 10.0
    assert metrics.chart_volume(6) == 10.0
    assert metrics.chart_coverage(0, 0) == 0.0
    assert metrics.chart_coverage(0, 3) == 1.0
    assert metrics.chart_coverage(3, 3) == 10.0
    assert metrics.chart_coverage(2, 4) == 5.0


def test_kpi_density_rewards_numbers() -> None:
    assert metrics.kpi_density([]) == 0.0
    assert metrics.kpi_density(["Revenue: 10", "Orders: 4", "AOV: 2.5", "Returns: 1"]) == 10.0
    assert metrics.kpi_density(["Revenue up", "Orders: 4"]) == 3.5


def test_summary_substance_ignores_fallback() -> None:
    assert metrics.summary_substance(FALLBACK_SUMMARY, FALLBACK_SUMMARY) == 0.0
    assert metrics.summary_substance(" ".join(["word"] * 60), FALLBACK_SUMMARY) == 10.0


def test_evaluate_full_report() -> None:
    report = StructuredReport(
        summary="Sales",
        kpis=["Revenue: 10", "Orders: 4", "AOV: 2.5", "Returns: 1"],
        charts=[ChartInsight(title=f"Chart {i}", bullets=["a", "b"]) for i in range(1, 4)],
        next_steps=["Raise prices", "Cut returns", "Expand ads"],
    )
    output = OrchestratorOutput(
        summary=" ".join(["insight"] * 60),
        artifacts=[Artifact(data=b"png") for _ in range(3)],
        structured_report=report,
        metrics=RunMetrics(rounds=2, artifact_count=3, external_context_used=False),
    )

    scores = evaluate_analysis_output(output)

    assert scores["visual_evidence_score"] == 10.0
    assert scores["actionability_score"] == 10.0
    assert scores["content_quality"]["context_usage"] == 5.0
    assert scores["structured_report_parsed"] is True


def test_evaluate_unparsed_run() -> None:
    output = OrchestratorOutput(summary=FALLBACK_SUMMARY)

    scores = evaluate_analysis_output(output)

    assert scores["structured_report_parsed"] is False
    assert scores["visual_evidence_score"] == 0.0
    assert scores["actionability_score"] == 0.0
