"""Heuristic quality metrics for a finished analysis run."""
from __future__ import annotations

import re
from statistics import mean
from typing import Dict, List

_NUMBER_PATTERN = re.compile(r"\d")


def _round(score: float) -> float:
    return round(max(0.0, min(10.0, score)), 1)


def chart_coverage(chart_blocks: int, artifact_count: int) -> float:
    """Score how well report chart blocks line up with captured charts (0-10)."""
    if artifact_count == 0:
        return 0.0
    if chart_blocks == 0:
        return 1.0
    ratio = min(chart_blocks, artifact_count) / max(chart_blocks, artifact_count)
    return _round(ratio * 10)


def chart_volume(artifact_count: int, minimum: int = 3) -> float:
    if minimum <= 0:
        return 10.0
    return _round(min(1.0, artifact_count / minimum) * 10)


def kpi_density(kpis: List[str]) -> float:
    """Reward KPI bullets that carry numbers; 4-7 bullets is the target."""
    if not kpis:
        return 0.0
    numeric = sum(1 for kpi in kpis if _NUMBER_PATTERN.search(kpi))
    ratio = numeric / len(kpis)
    count_bonus = 1.0 if 4 <= len(kpis) <= 7 else 0.7
    return _round(ratio * count_bonus * 10)


def chart_insight_depth(bullets_per_chart: List[int]) -> float:
    if not bullets_per_chart:
        return 0.0
    scores = [min(1.0, count / 2) for count in bullets_per_chart]
    return _round(mean(scores) * 10)


def next_step_completeness(next_steps: List[str]) -> float:
    if not next_steps:
        return 0.0
    concise = sum(1 for step in next_steps if len(step.split()) <= 15)
    ratio = min(1.0, len(next_steps) / 3) * (concise / len(next_steps))
    return _round(ratio * 10)


def summary_substance(summary: str, fallback: str) -> float:
    if not summary.strip() or summary == fallback:
        return 0.0
    # 60+ words earns full marks
    return _round(min(1.0, len(summary.split()) / 60) * 10)


def context_usage(external_context: str, context_bullets: List[str]) -> float:
    if not external_context:
        return 5.0  # neutral when no context was supplied
    return 10.0 if context_bullets else 2.0


def aggregate_dimension(scores: Dict[str, float]) -> float:
    if not scores:
        return 0.0
    return _round(mean(scores.values()))
