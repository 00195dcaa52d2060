"""Input and output records of one analysis run."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from MIRA_ANALYST.runtime.code_executor import Artifact
from MIRA_ANALYST.writing.report_parser import StructuredReport

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unsupported conversation role: {self.role!r}")

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConversationTurn":
        return cls(role=str(payload.get("role", "")), content=str(payload.get("content", "")))


@dataclass(frozen=True)
class AnalysisRequest:
    dataset: bytes
    user_message: str
    history: Tuple[ConversationTurn, ...] = ()

    @classmethod
    def build(
        cls,
        dataset: bytes,
        user_message: str,
        history: Optional[Sequence[ConversationTurn | Mapping[str, Any]]] = None,
    ) -> "AnalysisRequest":
        turns = tuple(
            turn if isinstance(turn, ConversationTurn) else ConversationTurn.from_dict(turn)
            for turn in (history or ())
        )
        return cls(dataset=bytes(dataset), user_message=user_message or "", history=turns)


@dataclass(frozen=True)
class RunMetrics:
    rounds: int
    artifact_count: int
    external_context_used: bool
    directives_sent: int = 0


@dataclass
class OrchestratorOutput:
    summary: str
    artifacts: List[Artifact] = field(default_factory=list)
    external_context: str = ""
    structured_report: Optional[StructuredReport] = None
    metrics: RunMetrics = field(default_factory=lambda: RunMetrics(0, 0, False))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view; chart bytes are summarised, not embedded."""
        return {
            "summary": self.summary,
            "external_context": self.external_context,
            "structured_report": self.structured_report.to_dict() if self.structured_report else None,
            "artifacts": [
                {"index": idx, "mime_type": artifact.mime_type, "bytes": len(artifact.data)}
                for idx, artifact in enumerate(self.artifacts, start=1)
            ],
            "metrics": {
                "rounds": self.metrics.rounds,
                "artifact_count": self.metrics.artifact_count,
                "external_context_used": self.metrics.external_context_used,
                "directives_sent": self.metrics.directives_sent,
            },
        }
