"""Chat Completions chunk stream -> Gemini streamGenerateContent SSE chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterator

from openai.types.chat import ChatCompletionChunk

from ..errors import error_message, gemini_error_body, get_status_code
from ..utils import format_sse_data, log_openai_api_error
from .tools import parse_tool_arguments

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": "STOP",
    "tool_calls": "STOP",
    "function_call": "STOP",
    "length": "MAX_TOKENS",
    "content_filter": "SAFETY",
}


def translate_finish_reason(finish_reason: str | None) -> str:
    return _FINISH_REASONS.get(finish_reason or "", "STOP")


def usage_metadata(prompt_tokens: int, candidates_tokens: int) -> dict[str, int]:
    return {
        "promptTokenCount": prompt_tokens,
        "candidatesTokenCount": candidates_tokens,
        "totalTokenCount": prompt_tokens + candidates_tokens,
    }


@dataclass
class _PendingFunctionCall:
    name: str = ""
    arguments: str = ""


class GeminiStreamingConverter:
    """
    Convert backend chunks into Gemini response chunks.

    Text is forwarded as it arrives. Gemini has no partial function calls,
    so tool call fragments are accumulated and emitted as complete
    ``functionCall`` parts in the final chunk, together with the finish
    reason and usage.
    """

    def __init__(self, original_model: str):
        self.original_model = original_model
        self.accumulated_text = ""
        self.function_calls: dict[int, _PendingFunctionCall] = {}
        self.prompt_tokens = 0
        self.candidates_tokens = 0
        self.finish_reason: str | None = None
        self.chunks_received = 0

    def _text_chunk(self, text: str) -> str:
        return format_sse_data(
            {
                "candidates": [
                    {"content": {"parts": [{"text": text}], "role": "model"}, "index": 0}
                ]
            }
        )

    def process_chunk(self, chunk: ChatCompletionChunk) -> Iterator[str]:
        self.chunks_received += 1

        if chunk.usage:
            self.prompt_tokens = chunk.usage.prompt_tokens or 0
            self.candidates_tokens = chunk.usage.completion_tokens or 0

        if not chunk.choices:
            return

        choice = chunk.choices[0]
        delta = choice.delta
        if delta is not None:
            if delta.content:
                self.accumulated_text += delta.content
                yield self._text_chunk(delta.content)

            for tool_call in delta.tool_calls or []:
                pending = self.function_calls.setdefault(tool_call.index, _PendingFunctionCall())
                function = tool_call.function
                if function is None:
                    continue
                if function.name:
                    pending.name = function.name
                if function.arguments:
                    pending.arguments += function.arguments

        if choice.finish_reason:
            self.finish_reason = choice.finish_reason

    def finish(self) -> Iterator[str]:
        parts: list[dict[str, Any]] = []
        for index in sorted(self.function_calls):
            pending = self.function_calls[index]
            if not pending.name:
                logger.warning(f"Dropping unnamed function call at index {index}")
                continue
            parts.append(
                {"functionCall": {"name": pending.name, "args": parse_tool_arguments(pending.arguments)}}
            )

        yield format_sse_data(
            {
                "candidates": [
                    {
                        "content": {"parts": parts or [{"text": ""}], "role": "model"},
                        "finishReason": translate_finish_reason(self.finish_reason),
                        "index": 0,
                    }
                ],
                "usageMetadata": usage_metadata(self.prompt_tokens, self.candidates_tokens),
                "modelVersion": self.original_model,
            }
        )

    def fail(self, error: BaseException) -> Iterator[str]:
        yield format_sse_data(gemini_error_body(get_status_code(error), error_message(error)))

    async def convert(self, stream: AsyncIterator[ChatCompletionChunk]) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                for event in self.process_chunk(chunk):
                    yield event
        except Exception as e:
            log_openai_api_error(e, f"gemini streaming after {self.chunks_received} chunks")
            for event in self.fail(e):
                yield event
            return

        for event in self.finish():
            yield event
        logger.info(
            f"STREAMING_COMPLETE: Model={self.original_model}, "
            f"Text={len(self.accumulated_text)} chars, FunctionCalls={len(self.function_calls)}, "
            f"InputTokens={self.prompt_tokens}, OutputTokens={self.candidates_tokens}"
        )


async def convert_openai_streaming_response_to_gemini(
    stream: AsyncIterator[ChatCompletionChunk],
    original_model: str,
) -> AsyncIterator[str]:
    converter = GeminiStreamingConverter(original_model)
    async for event in converter.convert(stream):
        yield event
