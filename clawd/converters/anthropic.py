"""
Anthropic Messages <-> Chat Completions converter.

Requests from Anthropic clients (Claude Code) are translated into
Chat Completions parameters; backend completions and chunk streams are
translated back into Anthropic Messages responses and SSE events.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from openai.types.chat import ChatCompletion, ChatCompletionChunk
from pydantic import ValidationError

from ..errors import TranslationError, anthropic_error_body
from ..hook import ANTHROPIC_TIER_KEYWORDS
from ..types import (
    ClaudeContentBlockText,
    ClaudeMessagesRequest,
    ClaudeMessagesResponse,
    ClaudeUsage,
    generate_unique_id,
)
from ._anthropic_streaming import (
    convert_openai_streaming_response_to_anthropic,
    translate_stop_reason,
)
from .base import BaseConverter
from .content import translate_messages
from .tools import (
    translate_tool_calls_to_anthropic,
    translate_tool_choice,
    translate_tool_definitions,
)

logger = logging.getLogger(__name__)


def parse_anthropic_request(payload: dict[str, Any]) -> ClaudeMessagesRequest:
    try:
        return ClaudeMessagesRequest.model_validate(payload)
    except ValidationError as e:
        raise TranslationError("invalid_request", f"Invalid Messages request: {e}") from e


def anthropic_request_to_openai(request: ClaudeMessagesRequest) -> dict[str, Any]:
    """Map an Anthropic Messages request onto Chat Completions parameters.

    ``thinking`` is carried through for the hook pipeline, which removes it
    before the request is dispatched.
    """
    params: dict[str, Any] = {
        "model": request.model,
        "messages": translate_messages(request.messages, request.system),
        "stream": bool(request.stream),
    }

    if request.max_tokens:
        params["max_completion_tokens"] = request.max_tokens
    if request.temperature is not None:
        params["temperature"] = request.temperature
    if request.top_p is not None:
        params["top_p"] = request.top_p
    if request.stop_sequences:
        params["stop"] = request.stop_sequences

    tools = translate_tool_definitions(request.tools)
    if tools:
        params["tools"] = tools
    tool_choice = translate_tool_choice(request.tool_choice)
    if tool_choice is not None:
        params["tool_choice"] = tool_choice

    if request.thinking is not None:
        params["thinking"] = request.thinking.model_dump(exclude_none=True)

    if params["stream"]:
        params["stream_options"] = {"include_usage": True}

    return params


def convert_openai_response_to_anthropic(
    response: ChatCompletion, original_model: str
) -> ClaudeMessagesResponse:
    """Convert a backend completion to an Anthropic Messages response."""
    if not response.choices:
        raise TranslationError("empty_upstream_response", "No choices in backend response")

    choice = response.choices[0]
    message = choice.message

    content: list[Any] = []
    if message.content:
        content.append(ClaudeContentBlockText(text=message.content))
    content.extend(translate_tool_calls_to_anthropic(message.tool_calls))

    usage = ClaudeUsage()
    if response.usage:
        usage = ClaudeUsage(
            input_tokens=response.usage.prompt_tokens or 0,
            output_tokens=response.usage.completion_tokens or 0,
        )

    return ClaudeMessagesResponse(
        id=generate_unique_id("msg"),
        model=original_model,
        content=content,
        stop_reason=translate_stop_reason(choice.finish_reason),
        stop_sequence=None,
        usage=usage,
    )


class AnthropicConverter(BaseConverter):
    """Converter for Anthropic Messages clients."""

    model_keywords = ANTHROPIC_TIER_KEYWORDS
    default_tier = None

    def translate_request(
        self,
        payload: dict[str, Any],
        *,
        model: str | None = None,
        stream: bool | None = None,
    ) -> dict[str, Any]:
        request = parse_anthropic_request(payload)
        if model:
            request.model = model
        if stream is not None:
            request.stream = stream
        params = anthropic_request_to_openai(request)
        logger.debug(
            f"Translated Messages request: model={params['model']}, "
            f"messages={len(params['messages'])}, tools={len(params.get('tools', []))}"
        )
        return params

    def translate_response(
        self,
        response: ChatCompletion,
        original_model: str,
    ) -> dict[str, Any]:
        return convert_openai_response_to_anthropic(response, original_model).model_dump()

    def translate_stream(
        self,
        stream: AsyncIterator[ChatCompletionChunk],
        original_model: str,
    ) -> AsyncIterator[str]:
        return convert_openai_streaming_response_to_anthropic(stream, original_model)

    def error_body(self, status_code: int, message: str) -> dict[str, Any]:
        return anthropic_error_body(status_code, message)
