"""Optional JSONL event log for analysis runs."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict


class RunEventLog:
    """Appends one JSON object per run event. Does nothing without a path."""

    def __init__(self, log_path: Path | None = None, run_id: str | None = None) -> None:
        self.log_path = log_path
        self.run_id = run_id
        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, event: str, payload: Dict[str, Any] | None = None) -> None:
        if not self.log_path:
            return
        entry = {
            "event": event,
            "run_id": self.run_id,
            "payload": payload or {},
        }
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
