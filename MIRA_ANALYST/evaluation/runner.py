"""Utilities to score a completed Mira analysis run using evaluation metrics."""
from __future__ import annotations

from typing import Any, Dict

from MIRA_ANALYST.evaluation import metrics
from MIRA_ANALYST.pipeline.models import OrchestratorOutput
from MIRA_ANALYST.writing.report_parser import FALLBACK_SUMMARY, StructuredReport


def evaluate_analysis_output(output: OrchestratorOutput, min_charts: int = 3) -> Dict[str, Any]:
    """Compute per-dimension quality scores for an analysis run."""

    report = output.structured_report or StructuredReport()
    artifact_count = len(output.artifacts)

    visual = {
        "chart_volume": metrics.chart_volume(artifact_count, minimum=min_charts),
        "chart_coverage": metrics.chart_coverage(len(report.charts), artifact_count),
        "chart_insight_depth": metrics.chart_insight_depth([len(chart.bullets) for chart in report.charts]),
    }

    content = {
        "kpi_density": metrics.kpi_density(report.kpis),
        "summary_substance": metrics.summary_substance(output.summary, FALLBACK_SUMMARY),
        "context_usage": metrics.context_usage(output.external_context, report.external_context),
    }

    actionability = {
        "next_step_completeness": metrics.next_step_completeness(report.next_steps),
    }

    return {
        "visual_evidence": visual,
        "content_quality": content,
        "actionability": actionability,
        "visual_evidence_score": metrics.aggregate_dimension(visual),
        "content_quality_score": metrics.aggregate_dimension(content),
        "actionability_score": metrics.aggregate_dimension(actionability),
        "structured_report_parsed": output.structured_report is not None,
    }
