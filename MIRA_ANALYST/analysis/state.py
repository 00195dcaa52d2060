"""Conversation-loop states and per-run mutable state."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Union

from MIRA_ANALYST.runtime.code_executor import Artifact
from MIRA_ANALYST.runtime.errors import InvalidTransition
from MIRA_ANALYST.runtime.tool_calls import ModelReply, ToolResponse


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    NATURAL_LANGUAGE_RECEIVED = "natural_language_received"
    TERMINATED = "terminated"


# The only legal moves of the conversation loop.
TRANSITIONS: Dict[LoopState, FrozenSet[LoopState]] = {
    LoopState.AWAITING_MODEL: frozenset(
        {LoopState.TOOL_CALLS_PENDING, LoopState.NATURAL_LANGUAGE_RECEIVED, LoopState.TERMINATED}
    ),
    LoopState.TOOL_CALLS_PENDING: frozenset({LoopState.AWAITING_MODEL}),
    LoopState.NATURAL_LANGUAGE_RECEIVED: frozenset({LoopState.AWAITING_MODEL, LoopState.TERMINATED}),
    LoopState.TERMINATED: frozenset(),
}

OutgoingTurn = Union[str, Sequence[ToolResponse]]


@dataclass
class RunState:
    """State of one orchestrator invocation. Never persisted."""

    max_rounds: int
    round: int = 0
    artifacts: List[Artifact] = field(default_factory=list)
    forced_continue: bool = False
    directives_sent: int = 0
    final_text: Optional[str] = None
    last_text: str = ""
    loop_state: LoopState = LoopState.AWAITING_MODEL
    outgoing: OutgoingTurn = ""
    reply: Optional[ModelReply] = None

    @property
    def remaining_rounds(self) -> int:
        return self.max_rounds - self.round

    @property
    def artifact_count(self) -> int:
        return len(self.artifacts)

    @property
    def terminated(self) -> bool:
        return self.loop_state is LoopState.TERMINATED

    def advance(self, target: LoopState) -> None:
        if target not in TRANSITIONS[self.loop_state]:
            raise InvalidTransition(f"{self.loop_state.value} -> {target.value}")
        self.loop_state = target

    def start_round(self) -> None:
        if self.round >= self.max_rounds:
            raise InvalidTransition(f"round budget of {self.max_rounds} exhausted")
        self.round += 1
        self.forced_continue = False

    def issue_directive(self) -> None:
        """Mark that this round ended with a corrective directive."""
        self.forced_continue = True
        self.directives_sent += 1

    def add_artifacts(self, artifacts: Sequence[Artifact]) -> None:
        self.artifacts.extend(artifacts)

    def summary_candidate(self) -> str:
        """Accepted text, else the last natural-language text seen."""
        if self.final_text is not None:
            return self.final_text
        return self.last_text
