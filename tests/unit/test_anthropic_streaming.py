"""
Tests for Chat Completions chunk stream -> Anthropic SSE events.

Covers:
- Block structure for text followed by tool calls
- Usage reporting from the trailing usage chunk
- Mid-stream failures
- Degenerate streams
"""

import pytest

from clawd.converters._anthropic_streaming import (
    AnthropicStreamingConverter,
    convert_openai_streaming_response_to_anthropic,
    translate_stop_reason,
)
from tests.helpers import (
    api_status_error,
    async_iter,
    collect,
    failing_iter,
    make_chunk,
    parse_anthropic_events,
    tool_call_delta,
)


async def run_stream(chunks, model="claude-sonnet-4"):
    events = await collect(
        convert_openai_streaming_response_to_anthropic(async_iter(chunks), model)
    )
    return parse_anthropic_events(events)


def assert_blocks_balanced(events):
    """Every started block stops exactly once and blocks never overlap."""
    open_index = None
    started, stopped = [], []
    for name, data in events:
        if name == "content_block_start":
            assert open_index is None, f"block {data['index']} opened while {open_index} open"
            open_index = data["index"]
            started.append(data["index"])
        elif name == "content_block_delta":
            assert data["index"] == open_index
        elif name == "content_block_stop":
            assert data["index"] == open_index
            stopped.append(data["index"])
            open_index = None
    assert open_index is None
    assert started == stopped
    assert started == sorted(set(started))


class TestStopReason:
    def test_mapping(self):
        assert translate_stop_reason("stop") == "end_turn"
        assert translate_stop_reason("tool_calls") == "tool_use"
        assert translate_stop_reason("function_call") == "tool_use"
        assert translate_stop_reason("length") == "max_tokens"
        assert translate_stop_reason("content_filter") == "end_turn"
        assert translate_stop_reason(None) == "end_turn"


class TestAnthropicStreaming:
    @pytest.mark.asyncio
    async def test_text_then_tool_call(self):
        events = await run_stream(
            [
                make_chunk(content="Hel"),
                make_chunk(content="lo"),
                make_chunk(
                    tool_calls=[tool_call_delta(0, "call_1", "read_file", "")]
                ),
                make_chunk(tool_calls=[tool_call_delta(0, arguments='{"path"')]),
                make_chunk(tool_calls=[tool_call_delta(0, arguments=': "a.py"}')]),
                make_chunk(finish_reason="tool_calls"),
                make_chunk(with_choice=False, usage=(12, 7)),
            ]
        )

        names = [name for name, _ in events]
        assert names == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "content_block_delta",
            "content_block_stop",
            "content_block_start",
            "content_block_delta",
            "content_block_delta",
            "content_block_stop",
            "message_delta",
            "message_stop",
        ]
        assert_blocks_balanced(events)

        message = events[0][1]["message"]
        assert message["id"].startswith("msg_")
        assert message["model"] == "claude-sonnet-4"
        assert message["usage"]["output_tokens"] == 0

        assert events[1][1] == {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "text", "text": ""},
        }
        assert events[2][1]["delta"] == {"type": "text_delta", "text": "Hel"}
        assert events[3][1]["delta"] == {"type": "text_delta", "text": "lo"}
        assert events[5][1]["content_block"] == {
            "type": "tool_use",
            "id": "call_1",
            "name": "read_file",
            "input": {},
        }
        assert events[5][1]["index"] == 1
        partial = "".join(data["delta"]["partial_json"] for _, data in events[6:8])
        assert partial == '{"path": "a.py"}'

        message_delta = events[9][1]
        assert message_delta["delta"]["stop_reason"] == "tool_use"
        assert message_delta["usage"] == {"output_tokens": 7}

    @pytest.mark.asyncio
    async def test_parallel_tool_calls_get_sequential_blocks(self):
        events = await run_stream(
            [
                make_chunk(tool_calls=[tool_call_delta(0, "call_a", "ls", "{}")]),
                make_chunk(tool_calls=[tool_call_delta(1, "call_b", "pwd", "{}")]),
                make_chunk(finish_reason="tool_calls"),
            ]
        )
        assert_blocks_balanced(events)
        starts = [data for name, data in events if name == "content_block_start"]
        assert [(s["index"], s["content_block"]["id"]) for s in starts] == [
            (0, "call_a"),
            (1, "call_b"),
        ]

    @pytest.mark.asyncio
    async def test_text_after_tool_call_opens_new_block(self):
        events = await run_stream(
            [
                make_chunk(tool_calls=[tool_call_delta(0, "call_a", "ls", "{}")]),
                make_chunk(content="done"),
                make_chunk(finish_reason="stop"),
            ]
        )
        assert_blocks_balanced(events)
        starts = [data["content_block"]["type"] for name, data in events if name == "content_block_start"]
        assert starts == ["tool_use", "text"]

    @pytest.mark.asyncio
    async def test_unknown_tool_index_fragment_is_dropped(self):
        events = await run_stream(
            [
                make_chunk(content="Hi"),
                make_chunk(tool_calls=[tool_call_delta(3, arguments='{"x": 1}')]),
                make_chunk(finish_reason="stop"),
            ]
        )
        assert_blocks_balanced(events)
        deltas = [data["delta"] for name, data in events if name == "content_block_delta"]
        assert deltas == [{"type": "text_delta", "text": "Hi"}]

    @pytest.mark.asyncio
    async def test_zero_chunks(self):
        events = await run_stream([])
        assert [name for name, _ in events] == ["message_start", "message_delta", "message_stop"]
        assert events[1][1]["delta"]["stop_reason"] == "end_turn"

    @pytest.mark.asyncio
    async def test_missing_finish_reason_after_tool_call(self):
        events = await run_stream(
            [make_chunk(tool_calls=[tool_call_delta(0, "call_a", "ls", "{}")])]
        )
        assert_blocks_balanced(events)
        assert events[-2][1]["delta"]["stop_reason"] == "tool_use"

    @pytest.mark.asyncio
    async def test_length_finish_reason(self):
        events = await run_stream(
            [make_chunk(content="trunc"), make_chunk(finish_reason="length")]
        )
        assert events[-2][1]["delta"]["stop_reason"] == "max_tokens"

    @pytest.mark.asyncio
    async def test_input_tokens_from_first_chunk_usage(self):
        events = await run_stream(
            [make_chunk(content="Hi", usage=(30, 0)), make_chunk(finish_reason="stop")]
        )
        assert events[0][1]["message"]["usage"]["input_tokens"] == 30


class TestMidStreamError:
    @pytest.mark.asyncio
    async def test_error_closes_open_blocks_and_ends_stream(self):
        stream = failing_iter(
            [make_chunk(content="partial")],
            api_status_error(500, "upstream exploded"),
        )
        converter = AnthropicStreamingConverter("claude-sonnet-4")
        events = parse_anthropic_events(await collect(converter.convert(stream)))

        names = [name for name, _ in events]
        assert names == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "content_block_stop",
            "error",
        ]
        assert "message_stop" not in names
        assert events[-1][1] == {
            "type": "error",
            "error": {"type": "api_error", "message": "upstream exploded"},
        }
        assert converter.finalized

    @pytest.mark.asyncio
    async def test_error_before_first_chunk_is_only_an_error(self):
        stream = failing_iter([], api_status_error(429, "slow down"))
        events = parse_anthropic_events(
            await collect(convert_openai_streaming_response_to_anthropic(stream, "claude-haiku"))
        )
        assert [name for name, _ in events] == ["error"]
        assert events[0][1]["error"]["type"] == "rate_limit_error"
