"""Tool call types exchanged between the model and the dispatcher."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

RUN_PYTHON = "run_python"


@dataclass(frozen=True)
class ToolCall:
    """Raw tool request as emitted by the model."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RunPythonCall:
    code: str
    reasoning: str = ""
    name: str = RUN_PYTHON


@dataclass(frozen=True)
class InvalidToolCall:
    """A call the dispatcher refuses: unknown tool or bad arguments."""

    name: str
    message: str


ParsedToolCall = Union[RunPythonCall, InvalidToolCall]


@dataclass(frozen=True)
class ToolResponse:
    name: str
    payload: Dict[str, Any]


@dataclass
class ModelReply:
    """One model turn: tool calls, natural-language text, or neither."""

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = "unknown"


def run_python_tool(dataset_path: str) -> Dict[str, Any]:
    """Provider-neutral declaration of the ``run_python`` tool."""
    return {
        "name": RUN_PYTHON,
        "description": (
            "Run Python code to analyze the CSV and generate charts.\n\n"
            f"- The CSV is at '{dataset_path}'.\n"
            "- ALWAYS start by:\n"
            "  import pandas as pd\n"
            f"  df = pd.read_csv('{dataset_path}')\n"
            "- For complex analysis, you MAY:\n"
            "  - Create SQLite DB with sqlite3\n"
            "  - df.to_sql('data', conn, if_exists='replace', index=False)\n"
            "- Use matplotlib.pyplot as plt and ALWAYS call plt.show() for charts."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "code": {
                    "type": "string",
                    "description": "The Python code to execute in a single cell.",
                },
                "reasoning": {
                    "type": "string",
                    "description": "Brief explanation of what this code is trying to do.",
                },
            },
            "required": ["code", "reasoning"],
        },
    }


def parse_tool_call(call: ToolCall) -> ParsedToolCall:
    if call.name != RUN_PYTHON:
        return InvalidToolCall(name=call.name, message=f"Unknown tool: {call.name}")

    code = call.args.get("code")
    if not isinstance(code, str) or not code.strip():
        return InvalidToolCall(name=call.name, message="Argument 'code' must be a non-empty string")

    reasoning = call.args.get("reasoning")
    return RunPythonCall(code=code, reasoning=reasoning if isinstance(reasoning, str) else "")
