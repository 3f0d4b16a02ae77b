"""
Chat Completions chunk stream -> Anthropic Messages SSE events.

The backend streams flat token deltas; the Anthropic protocol needs explicit,
non-overlapping content blocks. ``AnthropicStreamingConverter`` owns one
``StreamState`` per call and rebuilds the block structure as chunks arrive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterator

from openai.types.chat import ChatCompletionChunk

from ..errors import anthropic_error_body, error_message, get_status_code
from ..types import generate_unique_id
from ..utils import format_sse_event, log_openai_api_error

logger = logging.getLogger(__name__)

_STOP_REASONS = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
    "content_filter": "end_turn",
}


def translate_stop_reason(finish_reason: str | None) -> str:
    return _STOP_REASONS.get(finish_reason or "", "end_turn")


@dataclass
class ToolCallState:
    block_index: int
    id: str
    name: str
    arguments: str = ""
    closed: bool = False


@dataclass
class StreamState:
    """Per-call streaming state. Block indices only ever grow."""

    message_start_sent: bool = False
    next_block_index: int = 0
    text_block_open: bool = False
    text_block_index: int | None = None
    accumulated_text: str = ""
    tool_calls: dict[int, ToolCallState] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None

    def allocate_block_index(self) -> int:
        index = self.next_block_index
        self.next_block_index += 1
        return index

    def open_tool_calls(self) -> list[ToolCallState]:
        return sorted(
            (call for call in self.tool_calls.values() if not call.closed),
            key=lambda call: call.block_index,
        )


class AnthropicStreamingConverter:
    """Encapsulates state and logic for converting backend chunks to Anthropic events."""

    def __init__(self, original_model: str):
        self.original_model = original_model
        self.message_id = generate_unique_id("msg")
        self.state = StreamState()
        self.chunks_received = 0
        self.finalized = False

    def _send_message_start_event(self) -> str:
        self.state.message_start_sent = True
        message_data = {
            "type": "message_start",
            "message": {
                "id": self.message_id,
                "type": "message",
                "role": "assistant",
                "model": self.original_model,
                "content": [],
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {
                    "input_tokens": self.state.input_tokens,
                    "output_tokens": 0,
                },
            },
        }
        logger.debug(
            f"STREAMING_EVENT: message_start - message_id: {self.message_id}, model: {self.original_model}"
        )
        return format_sse_event("message_start", message_data)

    def _send_content_block_start_event(self, index: int, content_block: dict[str, Any]) -> str:
        logger.debug(
            f"STREAMING_EVENT: content_block_start - index: {index}, block_type: {content_block['type']}"
        )
        return format_sse_event(
            "content_block_start",
            {"type": "content_block_start", "index": index, "content_block": content_block},
        )

    def _send_content_block_delta_event(self, index: int, delta: dict[str, Any]) -> str:
        return format_sse_event(
            "content_block_delta",
            {"type": "content_block_delta", "index": index, "delta": delta},
        )

    def _send_content_block_stop_event(self, index: int) -> str:
        logger.debug(f"STREAMING_EVENT: content_block_stop - index: {index}")
        return format_sse_event(
            "content_block_stop", {"type": "content_block_stop", "index": index}
        )

    def _send_message_delta_event(self, stop_reason: str, output_tokens: int) -> str:
        logger.debug(
            f"STREAMING_EVENT: message_delta - stop_reason: {stop_reason}, output_tokens: {output_tokens}"
        )
        return format_sse_event(
            "message_delta",
            {
                "type": "message_delta",
                "delta": {"stop_reason": stop_reason, "stop_sequence": None},
                "usage": {"output_tokens": output_tokens},
            },
        )

    def _send_message_stop_event(self) -> str:
        logger.debug("STREAMING_EVENT: message_stop")
        return format_sse_event("message_stop", {"type": "message_stop"})

    def _send_error_event(self, error: BaseException) -> str:
        body = anthropic_error_body(get_status_code(error), error_message(error))
        logger.debug(f"STREAMING_EVENT: error - {body['error']}")
        return format_sse_event("error", body)

    def _close_text_block(self) -> Iterator[str]:
        state = self.state
        if state.text_block_open:
            state.text_block_open = False
            yield self._send_content_block_stop_event(state.text_block_index)

    def _close_tool_blocks(self) -> Iterator[str]:
        for call in self.state.open_tool_calls():
            call.closed = True
            yield self._send_content_block_stop_event(call.block_index)

    def _close_open_blocks(self) -> Iterator[str]:
        yield from self._close_text_block()
        yield from self._close_tool_blocks()

    def _handle_text_delta(self, content: str) -> Iterator[str]:
        state = self.state
        if not state.text_block_open:
            # blocks never overlap, so pending tool blocks end here
            yield from self._close_tool_blocks()
            state.text_block_index = state.allocate_block_index()
            state.text_block_open = True
            yield self._send_content_block_start_event(
                state.text_block_index, {"type": "text", "text": ""}
            )

        state.accumulated_text += content
        yield self._send_content_block_delta_event(
            state.text_block_index, {"type": "text_delta", "text": content}
        )

    def _handle_tool_call_delta(self, tool_call) -> Iterator[str]:
        state = self.state
        tool_index = tool_call.index
        function = tool_call.function
        name = getattr(function, "name", None) or ""
        arguments = getattr(function, "arguments", None) or ""

        existing = state.tool_calls.get(tool_index)
        if tool_call.id and (existing is None or existing.id != tool_call.id):
            # the backend finishes one call before starting the next
            yield from self._close_open_blocks()
            existing = ToolCallState(
                block_index=state.allocate_block_index(),
                id=tool_call.id,
                name=name,
            )
            state.tool_calls[tool_index] = existing
            yield self._send_content_block_start_event(
                existing.block_index,
                {"type": "tool_use", "id": existing.id, "name": existing.name, "input": {}},
            )
        elif existing is None:
            logger.warning(
                f"Dropping tool call fragment for unknown index {tool_index}: {arguments!r}"
            )
            return
        elif name and not existing.name:
            existing.name = name

        if not arguments:
            return
        if existing.closed:
            logger.warning(
                f"Dropping tool call fragment for closed block {existing.block_index}: {arguments!r}"
            )
            return
        existing.arguments += arguments
        yield self._send_content_block_delta_event(
            existing.block_index, {"type": "input_json_delta", "partial_json": arguments}
        )

    def process_chunk(self, chunk: ChatCompletionChunk) -> Iterator[str]:
        """Process a single backend chunk and yield Anthropic events."""
        state = self.state
        self.chunks_received += 1

        if chunk.usage:
            state.input_tokens = chunk.usage.prompt_tokens or 0
            state.output_tokens = chunk.usage.completion_tokens or 0
            logger.debug(
                f"Extracted server usage: input={state.input_tokens}, output={state.output_tokens}"
            )

        if not state.message_start_sent:
            yield self._send_message_start_event()

        if not chunk.choices:
            return

        choice = chunk.choices[0]
        delta = choice.delta
        if delta is not None:
            if delta.content:
                yield from self._handle_text_delta(delta.content)
            for tool_call in delta.tool_calls or []:
                yield from self._handle_tool_call_delta(tool_call)

        if choice.finish_reason:
            yield from self._close_open_blocks()
            state.stop_reason = translate_stop_reason(choice.finish_reason)

    def finish(self) -> Iterator[str]:
        """Terminate a stream that ended normally."""
        state = self.state
        if not state.message_start_sent:
            yield self._send_message_start_event()
        yield from self._close_open_blocks()

        stop_reason = state.stop_reason
        if stop_reason is None:
            stop_reason = "tool_use" if state.tool_calls else "end_turn"
            logger.debug(f"Stream ended without finish_reason, using {stop_reason}")

        self.finalized = True
        yield self._send_message_delta_event(stop_reason, state.output_tokens)
        yield self._send_message_stop_event()

    def fail(self, error: BaseException) -> Iterator[str]:
        """Terminate a stream that failed; the last event is the error."""
        if self.state.message_start_sent:
            yield from self._close_open_blocks()
        self.finalized = True
        yield self._send_error_event(error)

    async def convert(self, stream: AsyncIterator[ChatCompletionChunk]) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                for event in self.process_chunk(chunk):
                    yield event
        except Exception as e:
            log_openai_api_error(e, f"streaming after {self.chunks_received} chunks")
            for event in self.fail(e):
                yield event
            _log_streaming_completion(self)
            return

        for event in self.finish():
            yield event
        _log_streaming_completion(self)


async def convert_openai_streaming_response_to_anthropic(
    stream: AsyncIterator[ChatCompletionChunk],
    original_model: str,
) -> AsyncIterator[str]:
    """Handle a backend chunk stream and convert it to Anthropic SSE events."""
    converter = AnthropicStreamingConverter(original_model)
    async for event in converter.convert(stream):
        yield event


def _log_streaming_completion(converter: AnthropicStreamingConverter) -> None:
    state = converter.state
    for call in state.tool_calls.values():
        logger.info(f"STREAMING_TOOL_CALL: {call.name} (id: {call.id}, block: {call.block_index})")
        logger.debug(f"  Arguments: {call.arguments}")
    logger.info(
        f"STREAMING_COMPLETE: Model={converter.original_model}, "
        f"Text={len(state.accumulated_text)} chars, ToolCalls={len(state.tool_calls)}, "
        f"InputTokens={state.input_tokens}, OutputTokens={state.output_tokens}, "
        f"Chunks={converter.chunks_received}"
    )
