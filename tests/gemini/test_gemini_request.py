"""
Tests for Gemini generateContent request -> Chat Completions translation.
"""

import pytest

from clawd.converters import GeminiConverter, ToolCallIdentity
from clawd.errors import TranslationError
from clawd.gemini_types import parse_gemini_request


@pytest.fixture
def converter():
    return GeminiConverter()


def conversation_with_calls(*names):
    contents = [{"role": "user", "parts": [{"text": "go"}]}]
    for name in names:
        contents.append({"role": "model", "parts": [{"functionCall": {"name": name, "args": {}}}]})
        contents.append(
            {"role": "user", "parts": [{"functionResponse": {"name": name, "response": {"ok": True}}}]}
        )
    return {"contents": contents}


class TestToolCallIdentity:
    def test_ids_follow_call_order(self):
        ids = ToolCallIdentity()
        assert ids.next_call_id("ls") == "call_0_ls"
        assert ids.next_call_id("read_file") == "call_1_read_file"
        assert ids.response_id("ls") == "call_0_ls"
        assert ids.response_id("read_file") == "call_1_read_file"

    def test_translation_is_deterministic(self, converter):
        payload = conversation_with_calls("ls", "read_file")
        first = converter.translate_request(payload, model="gemini-2.5-pro")
        second = converter.translate_request(payload, model="gemini-2.5-pro")
        assert first == second

    def test_repeated_name_gets_distinct_call_ids(self, converter):
        params = converter.translate_request(
            conversation_with_calls("ls", "ls", "ls"), model="gemini-2.5-pro"
        )
        call_ids = [
            call["id"]
            for message in params["messages"]
            for call in message.get("tool_calls", [])
        ]
        assert call_ids == ["call_0_ls", "call_1_ls", "call_2_ls"]

    def test_each_response_answers_the_call_before_it(self, converter):
        params = converter.translate_request(
            conversation_with_calls("read_file", "read_file"), model="gemini-2.5-pro"
        )
        messages = params["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant", "tool"]
        assert messages[2]["tool_call_id"] == messages[1]["tool_calls"][0]["id"] == "call_0_read_file"
        assert messages[4]["tool_call_id"] == messages[3]["tool_calls"][0]["id"] == "call_1_read_file"

    def test_parallel_calls_of_one_name_resolve_to_latest(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {
                        "role": "model",
                        "parts": [
                            {"functionCall": {"name": "ls", "args": {"path": "a"}}},
                            {"functionCall": {"name": "ls", "args": {"path": "b"}}},
                        ],
                    },
                    {
                        "role": "user",
                        "parts": [
                            {"functionResponse": {"name": "ls", "response": {"out": "a"}}},
                            {"functionResponse": {"name": "ls", "response": {"out": "b"}}},
                        ],
                    },
                ]
            },
            model="gemini-2.5-pro",
        )
        call_ids = [call["id"] for call in params["messages"][0]["tool_calls"]]
        response_ids = [m["tool_call_id"] for m in params["messages"] if m["role"] == "tool"]
        assert call_ids == ["call_0_ls", "call_1_ls"]
        assert response_ids == ["call_1_ls", "call_1_ls"]

    def test_thought_calls_are_not_numbered(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {
                        "role": "model",
                        "parts": [
                            {"functionCall": {"name": "plan", "args": {}}, "thought": True},
                            {"functionCall": {"name": "ls", "args": {}}},
                        ],
                    }
                ]
            },
            model="gemini-2.5-pro",
        )
        assert [call["id"] for call in params["messages"][0]["tool_calls"]] == ["call_0_ls"]

    def test_calls_and_responses_share_ids(self, converter):
        params = converter.translate_request(
            conversation_with_calls("ls", "read_file"), model="gemini-2.5-pro"
        )
        call_ids = [
            call["id"]
            for message in params["messages"]
            for call in message.get("tool_calls", [])
        ]
        response_ids = [
            message["tool_call_id"] for message in params["messages"] if message["role"] == "tool"
        ]
        assert call_ids == ["call_0_ls", "call_1_read_file"]
        assert response_ids == call_ids

    def test_response_without_call_falls_back(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {"role": "user", "parts": [{"functionResponse": {"name": "orphan", "response": {}}}]}
                ]
            },
            model="gemini-2.5-pro",
        )
        assert params["messages"] == [{"role": "tool", "tool_call_id": "call_orphan", "content": "{}"}]


class TestContents:
    def test_roles_and_text(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {"role": "user", "parts": [{"text": "Hi"}]},
                    {"role": "model", "parts": [{"text": "Hel"}, {"text": "lo"}]},
                ]
            },
            model="gemini-2.5-flash",
        )
        assert params["model"] == "gemini-2.5-flash"
        assert params["messages"] == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]
        assert params["stream"] is False

    def test_thought_parts_are_skipped(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {"role": "model", "parts": [{"text": "thinking...", "thought": True}, {"text": "Answer"}]}
                ]
            },
            model="gemini-2.5-pro",
        )
        assert params["messages"] == [{"role": "assistant", "content": "Answer"}]

    def test_inline_and_file_data(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {
                        "role": "user",
                        "parts": [
                            {"text": "Describe"},
                            {"inlineData": {"mimeType": "image/png", "data": "iVBOR"}},
                            {"fileData": {"mimeType": "image/png", "fileUri": "https://x/y.png"}},
                        ],
                    }
                ]
            },
            model="gemini-2.5-pro",
        )
        assert params["messages"][0]["content"] == [
            {"type": "text", "text": "Describe"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,iVBOR"}},
            {"type": "image_url", "image_url": {"url": "https://x/y.png"}},
        ]

    def test_model_call_with_text(self, converter):
        params = converter.translate_request(
            {
                "contents": [
                    {
                        "role": "model",
                        "parts": [
                            {"text": "Let me look."},
                            {"functionCall": {"name": "ls", "args": {"path": "."}}},
                        ],
                    }
                ]
            },
            model="gemini-2.5-pro",
        )
        assert params["messages"] == [
            {
                "role": "assistant",
                "content": "Let me look.",
                "tool_calls": [
                    {
                        "id": "call_0_ls",
                        "type": "function",
                        "function": {"name": "ls", "arguments": '{"path":"."}'},
                    }
                ],
            }
        ]

    def test_system_instruction_and_generation_config(self, converter):
        params = converter.translate_request(
            {
                "systemInstruction": {"parts": [{"text": "rule one"}, {"text": "rule two"}]},
                "contents": [{"role": "user", "parts": [{"text": "Hi"}]}],
                "generationConfig": {
                    "maxOutputTokens": 2048,
                    "temperature": 0.3,
                    "topP": 0.8,
                    "stopSequences": ["STOP"],
                },
            },
            model="gemini-2.5-pro",
        )
        assert params["messages"][0] == {"role": "system", "content": "rule one\nrule two"}
        assert params["max_completion_tokens"] == 2048
        assert params["temperature"] == 0.3
        assert params["top_p"] == 0.8
        assert params["stop"] == ["STOP"]

    def test_string_system_instruction(self, converter):
        params = converter.translate_request(
            {"systemInstruction": "Be brief.", "contents": [{"role": "user", "parts": [{"text": "Hi"}]}]},
            model="gemini-2.5-pro",
        )
        assert params["messages"][0] == {"role": "system", "content": "Be brief."}

    def test_tools_and_tool_config(self, converter):
        params = converter.translate_request(
            {
                "contents": [{"role": "user", "parts": [{"text": "Hi"}]}],
                "tools": [{"functionDeclarations": [{"name": "ls", "parameters": {"type": "object"}}]}],
                "toolConfig": {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["ls"]}},
            },
            model="gemini-2.5-pro",
        )
        assert params["tools"][0]["function"]["name"] == "ls"
        assert params["tool_choice"] == {"type": "function", "function": {"name": "ls"}}

    def test_streaming_route_requests_usage(self, converter):
        params = converter.translate_request(
            {"contents": [{"role": "user", "parts": [{"text": "Hi"}]}]},
            model="gemini-2.5-pro",
            stream=True,
        )
        assert params["stream"] is True
        assert params["stream_options"] == {"include_usage": True}

    def test_invalid_payload(self, converter):
        with pytest.raises(TranslationError):
            converter.translate_request({"contents": "nope"}, model="gemini-2.5-pro")
