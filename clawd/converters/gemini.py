"""
Gemini generateContent <-> Chat Completions converter.

Gemini identifies function calls by name only, so backend tool call ids are
synthesized while the conversation is translated front to back.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from openai.types.chat import ChatCompletion, ChatCompletionChunk
from pydantic import ValidationError

from ..errors import TranslationError, gemini_error_body
from ..hook import GEMINI_TIER_KEYWORDS
from ..gemini_types import (
    GeminiContent,
    GeminiGenerateContentRequest,
    GeminiGenerationConfig,
    GeminiPart,
    parse_gemini_request,
)
from ._gemini_streaming import (
    convert_openai_streaming_response_to_gemini,
    translate_finish_reason,
    usage_metadata,
)
from .base import BaseConverter
from .content import collapse_parts, data_url, image_url_part, text_part
from .tools import (
    dump_tool_arguments,
    parse_tool_arguments,
    translate_gemini_tool_config,
    translate_gemini_tools,
)

logger = logging.getLogger(__name__)

_ROLES = {
    "user": "user",
    "model": "assistant",
    "function": "tool",
}


def _call_id(index: int, name: str) -> str:
    return f"call_{index}_{name}"


class ToolCallIdentity:
    """
    Synthesized tool call ids for one conversation.

    Turns must be translated in order. The n-th functionCall of the
    conversation gets ``call_{n}_{name}``. A functionResponse only carries a
    name and resolves to the latest call of that name seen before it, so
    results are misattributed only when a name is called again before its
    earlier results arrive.
    """

    def __init__(self):
        self.calls_seen = 0
        self.latest: dict[str, str] = {}

    def next_call_id(self, name: str) -> str:
        call_id = _call_id(self.calls_seen, name)
        self.calls_seen += 1
        self.latest[name] = call_id
        return call_id

    def response_id(self, name: str) -> str:
        return self.latest.get(name) or f"call_{name}"


def _part_to_content_part(part: GeminiPart) -> dict[str, Any] | None:
    if part.text is not None:
        return text_part(part.text)
    if part.inlineData is not None:
        return image_url_part(data_url(part.inlineData.mimeType, part.inlineData.data))
    if part.fileData is not None:
        return image_url_part(part.fileData.fileUri)
    return None


def translate_content(content: GeminiContent, ids: ToolCallIdentity) -> list[dict[str, Any]]:
    """Translate one Gemini turn into one or more backend messages."""
    role = _ROLES.get(content.role or "user", "user")

    content_parts: list[dict[str, Any]] = []
    tool_calls: list[dict[str, Any]] = []
    tool_messages: list[dict[str, Any]] = []
    for part in content.parts or []:
        if part.thought:
            continue
        if part.functionCall is not None:
            call = part.functionCall
            tool_calls.append(
                {
                    "id": ids.next_call_id(call.name),
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": dump_tool_arguments(call.args or {}),
                    },
                }
            )
        elif part.functionResponse is not None:
            response = part.functionResponse
            tool_messages.append(
                {
                    "role": "tool",
                    "tool_call_id": ids.response_id(response.name),
                    "content": dump_tool_arguments(response.response or {}),
                }
            )
        else:
            converted = _part_to_content_part(part)
            if converted is None:
                logger.debug(f"Skipping unsupported Gemini part: {part.model_dump(exclude_none=True)}")
            else:
                content_parts.append(converted)

    if role == "assistant":
        text = "".join(p["text"] for p in content_parts if p["type"] == "text")
        if tool_calls:
            return [{"role": "assistant", "content": text or None, "tool_calls": tool_calls}]
        return [{"role": "assistant", "content": text}]

    messages = tool_messages
    if content_parts or not tool_messages:
        messages.append({"role": "user", "content": collapse_parts(content_parts) if content_parts else ""})
    return messages


def _system_text(system_instruction: GeminiContent | None) -> str:
    if system_instruction is None:
        return ""
    return "\n".join(part.text for part in system_instruction.parts or [] if part.text)


def _apply_generation_config(params: dict[str, Any], config: GeminiGenerationConfig | None) -> None:
    if config is None:
        return
    if config.maxOutputTokens:
        params["max_completion_tokens"] = config.maxOutputTokens
    if config.temperature is not None:
        params["temperature"] = config.temperature
    if config.topP is not None:
        params["top_p"] = config.topP
    if config.stopSequences:
        params["stop"] = config.stopSequences


def gemini_request_to_openai(
    request: GeminiGenerateContentRequest, model: str, stream: bool = False
) -> dict[str, Any]:
    contents = request.contents or []
    ids = ToolCallIdentity()

    messages: list[dict[str, Any]] = []
    system_text = _system_text(request.systemInstruction)
    if system_text:
        messages.append({"role": "system", "content": system_text})
    for content in contents:
        messages.extend(translate_content(content, ids))

    params: dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
    _apply_generation_config(params, request.generationConfig)

    tools = translate_gemini_tools(request.tools)
    if tools:
        params["tools"] = tools
    tool_choice = translate_gemini_tool_config(request.toolConfig)
    if tool_choice is not None:
        params["tool_choice"] = tool_choice

    if stream:
        params["stream_options"] = {"include_usage": True}
    return params


def convert_openai_response_to_gemini(response: ChatCompletion, original_model: str) -> dict[str, Any]:
    """Convert a backend completion to a Gemini generateContent response."""
    if not response.choices:
        raise TranslationError("empty_upstream_response", "No choices in backend response")

    choice = response.choices[0]
    message = choice.message

    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"text": message.content})
    for tool_call in message.tool_calls or []:
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        parts.append(
            {"functionCall": {"name": function.name, "args": parse_tool_arguments(function.arguments)}}
        )
    if not parts:
        parts.append({"text": ""})

    usage = response.usage
    return {
        "candidates": [
            {
                "content": {"role": "model", "parts": parts},
                "finishReason": translate_finish_reason(choice.finish_reason),
                "index": 0,
                "safetyRatings": [],
            }
        ],
        "usageMetadata": usage_metadata(
            (usage.prompt_tokens or 0) if usage else 0,
            (usage.completion_tokens or 0) if usage else 0,
        ),
        "modelVersion": original_model,
    }


class GeminiConverter(BaseConverter):
    """Converter for Gemini generateContent clients (Gemini CLI)."""

    model_keywords = GEMINI_TIER_KEYWORDS
    default_tier = "sonnet"

    def translate_request(
        self,
        payload: dict[str, Any],
        *,
        model: str | None = None,
        stream: bool | None = None,
    ) -> dict[str, Any]:
        try:
            request = parse_gemini_request(payload)
        except ValidationError as e:
            raise TranslationError("invalid_request", f"Invalid generateContent request: {e}") from e
        params = gemini_request_to_openai(request, model or payload.get("model") or "", bool(stream))
        logger.debug(
            f"Translated generateContent request: model={params['model']}, "
            f"messages={len(params['messages'])}, tools={len(params.get('tools', []))}"
        )
        return params

    def translate_response(
        self,
        response: ChatCompletion,
        original_model: str,
    ) -> dict[str, Any]:
        return convert_openai_response_to_gemini(response, original_model)

    def translate_stream(
        self,
        stream: AsyncIterator[ChatCompletionChunk],
        original_model: str,
    ) -> AsyncIterator[str]:
        return convert_openai_streaming_response_to_gemini(stream, original_model)

    def error_body(self, status_code: int, message: str) -> dict[str, Any]:
        return gemini_error_body(status_code, message)
