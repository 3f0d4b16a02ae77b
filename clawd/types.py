"""
Pydantic models for the Anthropic Messages client protocol.

Requests are validated leniently: unknown content block types and image
source types are captured by catch-all models instead of failing validation,
so the translators can render them as placeholders.
"""

from __future__ import annotations

import secrets
import string
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

_ID_ALPHABET = string.ascii_letters + string.digits


def generate_unique_id(prefix: str, length: int = 24) -> str:
    """Generate an Anthropic-style identifier such as ``msg_<24 alnum>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))
    return f"{prefix}_{suffix}"


class ModelDefaults:
    """Default values shared by config, server and launcher."""

    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 2001
    DEFAULT_LOG_LEVEL = "INFO"
    DEFAULT_LOG_FILE = "clawd.log"
    DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"
    DEFAULT_AZURE_MAX_TOKENS = 128000
    DEFAULT_REASONING_EFFORT = "low"
    DEFAULT_REQUEST_TIMEOUT = 600.0
    PROXY_AUTH_TOKEN = "sk-clawd"


def _type_discriminator(known: frozenset[str]):
    def discriminate(value: Any) -> str:
        if isinstance(value, dict):
            value_type = value.get("type")
        else:
            value_type = getattr(value, "type", None)
        return value_type if value_type in known else "unknown"

    return discriminate


class ClaudeContentBlockText(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["text"] = "text"
    text: str = ""


class ClaudeContentBlockImageBase64Source(BaseModel):
    type: Literal["base64"] = "base64"
    media_type: str = "image/png"
    data: str = ""


class ClaudeContentBlockImageURLSource(BaseModel):
    type: Literal["url"] = "url"
    url: str = ""


class ClaudeContentBlockImageUnknownSource(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None


ClaudeImageSource = Annotated[
    Union[
        Annotated[ClaudeContentBlockImageBase64Source, Tag("base64")],
        Annotated[ClaudeContentBlockImageURLSource, Tag("url")],
        Annotated[ClaudeContentBlockImageUnknownSource, Tag("unknown")],
    ],
    Discriminator(_type_discriminator(frozenset({"base64", "url"}))),
]


class ClaudeContentBlockImage(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["image"] = "image"
    source: ClaudeImageSource


class ClaudeContentBlockToolUse(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ClaudeContentBlockToolResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str | list[dict[str, Any]] | None = None
    is_error: bool | None = None


class ClaudeContentBlockUnknown(BaseModel):
    """Any block type the translators do not understand (thinking, documents, ...)."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None


ClaudeContentBlock = Annotated[
    Union[
        Annotated[ClaudeContentBlockText, Tag("text")],
        Annotated[ClaudeContentBlockImage, Tag("image")],
        Annotated[ClaudeContentBlockToolUse, Tag("tool_use")],
        Annotated[ClaudeContentBlockToolResult, Tag("tool_result")],
        Annotated[ClaudeContentBlockUnknown, Tag("unknown")],
    ],
    Discriminator(
        _type_discriminator(frozenset({"text", "image", "tool_use", "tool_result"}))
    ),
]


class ClaudeMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    content: str | list[ClaudeContentBlock] = ""


class ClaudeTool(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = None


class ClaudeToolChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    name: str | None = None


class ClaudeThinkingConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    budget_tokens: int | None = None


class ClaudeMessagesRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str = ""
    max_tokens: int | None = None
    messages: list[ClaudeMessage] = Field(default_factory=list)
    system: str | list[ClaudeContentBlock] | None = None
    stop_sequences: list[str] | None = None
    stream: bool | None = False
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    metadata: dict[str, Any] | None = None
    tools: list[ClaudeTool] | None = None
    tool_choice: ClaudeToolChoice | str | None = None
    thinking: ClaudeThinkingConfig | None = None


class ClaudeUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ClaudeMessagesResponse(BaseModel):
    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    model: str
    content: list[ClaudeContentBlockText | ClaudeContentBlockToolUse]
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: ClaudeUsage = Field(default_factory=ClaudeUsage)
