"""
Tool definition, tool choice and tool call translation.

Shared by both client protocols: Anthropic tools and Gemini function
declarations are flattened into Chat Completions function tools, and
backend tool calls are turned back into Anthropic ``tool_use`` blocks.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from ..gemini_types import GeminiTool, GeminiToolConfig
from ..types import ClaudeContentBlockToolUse, ClaudeTool, ClaudeToolChoice
from ..utils import compact_json

logger = logging.getLogger(__name__)

EMPTY_OBJECT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}

_TOOL_CHOICE_MAP = {
    "auto": "auto",
    "any": "required",
    "none": "none",
}


def _function_tool(name: str, description: str | None, parameters: dict | None) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description or "",
            "parameters": parameters if parameters is not None else dict(EMPTY_OBJECT_SCHEMA),
        },
    }


def translate_tool_definitions(tools: list[ClaudeTool] | None) -> list[dict[str, Any]] | None:
    """Convert Anthropic tool definitions to Chat Completions function tools."""
    if not tools:
        return None
    return [
        _function_tool(tool.name, tool.description, tool.input_schema) for tool in tools
    ]


def translate_tool_choice(choice: ClaudeToolChoice | str | None) -> Any:
    """Convert an Anthropic tool_choice; unknown choice types fall back to ``auto``."""
    if choice is None:
        return None
    if isinstance(choice, str):
        return choice
    if choice.type == "tool":
        return {"type": "function", "function": {"name": choice.name or ""}}
    if choice.type not in _TOOL_CHOICE_MAP:
        logger.debug(f"Unknown tool_choice type {choice.type!r}, using auto")
    return _TOOL_CHOICE_MAP.get(choice.type, "auto")


def translate_gemini_tools(tools: list[GeminiTool] | None) -> list[dict[str, Any]] | None:
    """Flatten every functionDeclarations entry of every Gemini tool."""
    if not tools:
        return None

    result = []
    for tool in tools:
        for declaration in tool.functionDeclarations or []:
            parameters = declaration.parameters
            if parameters is None:
                parameters = declaration.parametersJsonSchema
            result.append(
                _function_tool(declaration.name, declaration.description, parameters)
            )
    return result or None


def translate_gemini_tool_config(tool_config: GeminiToolConfig | None) -> Any:
    if tool_config is None or tool_config.functionCallingConfig is None:
        return None

    config = tool_config.functionCallingConfig
    mode = (config.mode or "").upper()
    if mode == "AUTO":
        return "auto"
    if mode == "NONE":
        return "none"
    if mode in ("ANY", "VALIDATED"):
        allowed = config.allowedFunctionNames or []
        if len(allowed) == 1:
            return {"type": "function", "function": {"name": allowed[0]}}
        return "required"
    return None


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    """Parse tool call arguments; anything that is not a JSON object yields ``{}``."""
    if isinstance(raw, dict):
        return raw
    if not raw or not isinstance(raw, str):
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse tool arguments: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def dump_tool_arguments(arguments: Any) -> str:
    return compact_json(arguments if arguments is not None else {})


def translate_tool_calls_to_anthropic(
    tool_calls: Iterable[Any] | None,
) -> list[ClaudeContentBlockToolUse]:
    """Convert backend tool calls to Anthropic tool_use blocks, keeping their ids."""
    blocks = []
    for tool_call in tool_calls or []:
        function = getattr(tool_call, "function", None)
        if function is None:
            logger.warning(f"Skipping non-function tool call: {tool_call!r}")
            continue
        blocks.append(
            ClaudeContentBlockToolUse(
                id=tool_call.id,
                name=function.name,
                input=parse_tool_arguments(function.arguments),
            )
        )
    return blocks
