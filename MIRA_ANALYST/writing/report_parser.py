"""Extraction of the structured report from the model's final message."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = (
    "The analysis completed, but the model returned a very short response. "
    "Please review the generated charts and logs for details."
)

_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```$")

_ALIASES: Dict[str, Sequence[str]] = {
    "kpis": ("kpis", "key_kpis", "keyKpis"),
    "charts": ("charts", "chart_insights", "chartInsights"),
    "external_context": ("externalContext", "external_context"),
    "next_steps": ("nextSteps", "next_steps"),
    "additional_details": ("additionalDetails", "additional_details"),
}


@dataclass
class ChartInsight:
    title: str
    bullets: List[str] = field(default_factory=list)


@dataclass
class StructuredReport:
    summary: str = ""
    kpis: List[str] = field(default_factory=list)
    charts: List[ChartInsight] = field(default_factory=list)
    external_context: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    additional_details: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def strip_code_fence(text: str) -> str:
    """Remove one optional markdown fence wrapped around the whole text."""
    cleaned = (text or "").strip()
    if not cleaned.startswith("```"):
        return cleaned
    cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_report_object(text: str) -> Optional[Dict[str, Any]]:
    """Strict JSON parse. Anything other than a JSON object yields ``None``."""
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _coerce_strings(value: Any) -> List[str]:
    if value is None or isinstance(value, (dict, bool)):
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and not isinstance(item, (dict, list))]
    return [str(value)]


def _lookup(payload: Mapping[str, Any], field_name: str) -> Any:
    for key in _ALIASES[field_name]:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _coerce_charts(value: Any) -> List[ChartInsight]:
    if not isinstance(value, list):
        return []
    charts: List[ChartInsight] = []
    for idx, entry in enumerate(value, start=1):
        if isinstance(entry, dict):
            title = entry.get("title")
            charts.append(
                ChartInsight(
                    title=str(title) if title else f"Chart {idx}",
                    bullets=_coerce_strings(entry.get("bullets")),
                )
            )
        elif isinstance(entry, str) and entry.strip():
            charts.append(ChartInsight(title=entry.strip()))
        else:
            charts.append(ChartInsight(title=f"Chart {idx}"))
    return charts


def coerce_report(payload: Mapping[str, Any]) -> StructuredReport:
    summary = payload.get("summary")
    return StructuredReport(
        summary=summary.strip() if isinstance(summary, str) else "",
        kpis=_coerce_strings(_lookup(payload, "kpis")),
        charts=_coerce_charts(_lookup(payload, "charts")),
        external_context=_coerce_strings(_lookup(payload, "external_context")),
        next_steps=_coerce_strings(_lookup(payload, "next_steps")),
        additional_details=_coerce_strings(_lookup(payload, "additional_details")),
    )


def extract_report(raw_text: str) -> Optional[StructuredReport]:
    payload = parse_report_object(strip_code_fence(raw_text))
    if payload is None:
        if raw_text and raw_text.strip():
            logger.warning("Final message is not a JSON report; using raw text as summary")
        return None
    return coerce_report(payload)


def resolve_summary(
    raw_text: str,
    report: Optional[StructuredReport],
    min_length: int = 50,
) -> str:
    """Headline summary: report summary, else raw text, else the fallback."""
    summary = (raw_text or "").strip()
    if report is not None and report.summary:
        summary = report.summary
    if len(summary) < min_length:
        logger.warning("Final summary was empty or too short (%d chars); using fallback", len(summary))
        return FALLBACK_SUMMARY
    return summary
