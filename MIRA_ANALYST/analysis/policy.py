"""Minimum-chart policy gating when the model may finish."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Accept:
    pass


@dataclass(frozen=True)
class ContinueWithDirective:
    directive: str
    missing: int


PolicyDecision = Union[Accept, ContinueWithDirective]


def build_directive(artifact_count: int, minimum: int) -> str:
    missing = minimum - artifact_count
    return (
        f"You have generated {artifact_count} of the required {minimum} charts. "
        "Please continue the analysis:\n"
        "- Use run_python to compute more metrics if needed\n"
        f"- Use run_python again to generate at least {missing} additional "
        f"visualization{'s' if missing != 1 else ''} with matplotlib and plt.show()\n"
        "Remember to weave in the external context from the system messages where relevant.\n"
        "Do not write a final report until all required charts are created."
    )


def evaluate_artifact_policy(artifact_count: int, minimum: int, remaining_rounds: int) -> PolicyDecision:
    """Decide whether natural-language output may end the run.

    Accepts once ``minimum`` charts exist, or unconditionally when no rounds
    remain so a model that never charts cannot stall the loop.
    """
    if artifact_count >= minimum or remaining_rounds <= 0:
        return Accept()
    return ContinueWithDirective(
        directive=build_directive(artifact_count, minimum),
        missing=minimum - artifact_count,
    )
