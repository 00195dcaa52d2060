"""Gemini API client wrapper for the Mira analysis loop."""
from __future__ import annotations

from typing import Any, Dict, List, Sequence, Union

import google.generativeai as genai

from MIRA_ANALYST.runtime.tool_calls import ModelReply, ToolCall, ToolResponse

_SCHEMA_TYPES = {
    "object": genai.protos.Type.OBJECT,
    "string": genai.protos.Type.STRING,
    "integer": genai.protos.Type.INTEGER,
    "number": genai.protos.Type.NUMBER,
    "boolean": genai.protos.Type.BOOLEAN,
    "array": genai.protos.Type.ARRAY,
}


def _schema(spec: Dict[str, Any]) -> genai.protos.Schema:
    kwargs: Dict[str, Any] = {"type_": _SCHEMA_TYPES[spec.get("type", "string")]}
    if spec.get("description"):
        kwargs["description"] = spec["description"]
    if spec.get("properties"):
        kwargs["properties"] = {name: _schema(prop) for name, prop in spec["properties"].items()}
    if spec.get("required"):
        kwargs["required"] = list(spec["required"])
    if spec.get("items"):
        kwargs["items"] = _schema(spec["items"])
    return genai.protos.Schema(**kwargs)


def build_tool(declarations: Sequence[Dict[str, Any]]) -> genai.protos.Tool:
    """Convert provider-neutral tool declarations into a Gemini ``Tool``."""
    return genai.protos.Tool(
        function_declarations=[
            genai.protos.FunctionDeclaration(
                name=decl["name"],
                description=decl.get("description", ""),
                parameters=_schema(decl["parameters"]),
            )
            for decl in declarations
        ]
    )


class GeminiChatSession:
    """One multi-turn chat with tool calling enabled."""

    def __init__(self, chat: Any) -> None:
        self._chat = chat

    async def send(self, message: Union[str, Sequence[ToolResponse]]) -> ModelReply:
        if isinstance(message, str):
            content: Any = message
        else:
            content = [
                genai.protos.Part(
                    function_response=genai.protos.FunctionResponse(
                        name=response.name,
                        response=response.payload,
                    )
                )
                for response in message
            ]
        response = await self._chat.send_message_async(content)
        return ModelReply(
            text=GeminiClient._response_text(response).strip(),
            tool_calls=GeminiClient._function_calls(response),
            finish_reason=GeminiClient._finish_reason(response),
        )


class GeminiClient:
    """Lightweight Gemini client helper."""

    def __init__(self, api_key: str, model_name: str = "gemini-2.0-flash") -> None:
        genai.configure(api_key=api_key)
        self.model_name = model_name

    @staticmethod
    def _parts(response: Any) -> List[Any]:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        content = getattr(candidates[0], "content", None)
        return list(getattr(content, "parts", None) or []) if content else []

    @staticmethod
    def _response_text(response: Any) -> str:
        # ``response.text`` raises when parts carry function calls, so read parts.
        collected: list[str] = []
        for part in GeminiClient._parts(response):
            part_text = getattr(part, "text", None)
            if part_text:
                collected.append(part_text)
        return "\n".join(collected)

    @staticmethod
    def _function_calls(response: Any) -> List[ToolCall]:
        calls: List[ToolCall] = []
        for part in GeminiClient._parts(response):
            function_call = getattr(part, "function_call", None)
            name = getattr(function_call, "name", "") if function_call is not None else ""
            if not name:
                continue
            args = getattr(function_call, "args", None) or {}
            calls.append(ToolCall(name=name, args={key: value for key, value in args.items()}))
        return calls

    @staticmethod
    def _finish_reason(response: Any) -> str:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return "unknown"
        reason = getattr(candidates[0], "finish_reason", None)
        return str(reason) if reason is not None else "unknown"

    def start_chat(self, tools: Sequence[Dict[str, Any]]) -> GeminiChatSession:
        model = genai.GenerativeModel(model_name=self.model_name, tools=[build_tool(tools)])
        return GeminiChatSession(model.start_chat(history=[]))
