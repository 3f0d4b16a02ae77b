import json
from pathlib import Path
from types import SimpleNamespace

import httpx
import openai
from openai.types.chat import ChatCompletion, ChatCompletionChunk

from clawd.config import Config

MISSING_CONFIG = Path("/nonexistent/clawd/config.json")
BACKEND_URL = "https://api.openai.com/v1/chat/completions"


async def async_iter(items):
    for item in items:
        yield item


async def failing_iter(items, error):
    for item in items:
        yield item
    raise error


async def collect(gen):
    return [item async for item in gen]


def make_config(**env) -> Config:
    """Config built only from the given environment, never from the user's files."""
    env.setdefault("OPENAI_API_KEY", "sk-test")
    return Config(config_path=MISSING_CONFIG, environ=env)


def tool_call_delta(index=0, call_id=None, name=None, arguments=None) -> dict:
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    delta = {"index": index, "function": function}
    if call_id is not None:
        delta["id"] = call_id
        delta["type"] = "function"
    return delta


def make_chunk(
    content=None,
    tool_calls=None,
    finish_reason=None,
    usage=None,
    with_choice=True,
    model="gpt-4o",
) -> ChatCompletionChunk:
    data = {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "created": 0,
        "model": model,
        "choices": [],
    }
    if with_choice:
        delta = {}
        if content is not None:
            delta["content"] = content
        if tool_calls is not None:
            delta["tool_calls"] = tool_calls
        data["choices"] = [{"index": 0, "delta": delta, "finish_reason": finish_reason}]
    if usage is not None:
        prompt_tokens, completion_tokens = usage
        data["usage"] = {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        }
    return ChatCompletionChunk.model_validate(data)


def make_completion(
    content=None,
    tool_calls=None,
    finish_reason="stop",
    usage=(10, 5),
    with_choice=True,
    model="gpt-4o",
) -> ChatCompletion:
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = [
            {
                "id": call_id,
                "type": "function",
                "function": {"name": name, "arguments": arguments},
            }
            for call_id, name, arguments in tool_calls
        ]
    data = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 0,
        "model": model,
        "choices": [],
    }
    if with_choice:
        data["choices"] = [{"index": 0, "finish_reason": finish_reason, "message": message}]
    if usage is not None:
        prompt_tokens, completion_tokens = usage
        data["usage"] = {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        }
    return ChatCompletion.model_validate(data)


def api_status_error(status_code: int, message: str = "backend failure") -> openai.APIStatusError:
    request = httpx.Request("POST", BACKEND_URL)
    response = httpx.Response(status_code, request=request, json={"error": {"message": message}})
    return openai.APIStatusError(message, response=response, body=None)


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=httpx.Request("POST", BACKEND_URL))


def parse_anthropic_events(events) -> list[tuple[str, dict]]:
    """Split ``event:``/``data:`` SSE frames into (event, payload) pairs."""
    if isinstance(events, str):
        events = [frame + "\n\n" for frame in events.split("\n\n") if frame.strip()]
    parsed = []
    for frame in events:
        lines = frame.strip().split("\n")
        assert lines[0].startswith("event: "), frame
        assert lines[1].startswith("data: "), frame
        parsed.append((lines[0][len("event: "):], json.loads(lines[1][len("data: "):])))
    return parsed


def parse_data_events(events) -> list[dict]:
    """Parse ``data:``-only SSE frames."""
    if isinstance(events, str):
        events = [frame + "\n\n" for frame in events.split("\n\n") if frame.strip()]
    parsed = []
    for frame in events:
        assert frame.startswith("data: ") and frame.endswith("\n\n"), frame
        parsed.append(json.loads(frame[len("data: "):]))
    return parsed


class FakeCompletions:
    """Stands in for ``client.chat.completions``; results are consumed in order."""

    def __init__(self, results):
        self.results = list(results)
        self.calls: list[dict] = []

    async def create(self, **params):
        self.calls.append(params)
        if not self.results:
            raise AssertionError("unexpected backend call")
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeClient:
    def __init__(self, *results):
        self.completions = FakeCompletions(results)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> list[dict]:
        return self.completions.calls
