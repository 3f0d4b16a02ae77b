"""
Anthropic message content -> Chat Completions messages.

One backend message carries at most one text content plus zero or more tool
calls, and every tool result becomes its own ``tool`` message.
"""

from __future__ import annotations

import logging
from typing import Any

from ..types import (
    ClaudeContentBlock,
    ClaudeContentBlockImage,
    ClaudeContentBlockImageBase64Source,
    ClaudeContentBlockImageURLSource,
    ClaudeContentBlockText,
    ClaudeContentBlockToolResult,
    ClaudeContentBlockToolUse,
    ClaudeMessage,
)
from .tools import dump_tool_arguments

logger = logging.getLogger(__name__)

UNSUPPORTED_IMAGE_TEXT = "[Unsupported image format]"
TOOL_ERROR_PREFIX = "Error: "


def unsupported_block_text(block_type: str | None) -> str:
    return f"[Unsupported content block: {block_type}]"


def text_part(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def image_url_part(url: str) -> dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": url}}


def data_url(media_type: str, data: str) -> str:
    return f"data:{media_type};base64,{data}"


def collapse_parts(parts: list[dict[str, Any]]) -> str | list[dict[str, Any]]:
    """A lone text part travels as a bare string, anything else as an array."""
    if len(parts) == 1 and parts[0].get("type") == "text":
        return parts[0]["text"]
    return parts


def translate_system(system: str | list[ClaudeContentBlock] | None) -> str | None:
    if system is None:
        return None
    if isinstance(system, str):
        return system or None
    text = "\n".join(
        block.text for block in system if isinstance(block, ClaudeContentBlockText)
    )
    return text or None


def translate_image_block(block: ClaudeContentBlockImage) -> dict[str, Any]:
    source = block.source
    if isinstance(source, ClaudeContentBlockImageBase64Source):
        return image_url_part(data_url(source.media_type, source.data))
    if isinstance(source, ClaudeContentBlockImageURLSource):
        return image_url_part(source.url)
    logger.warning(f"Unsupported image source type: {getattr(source, 'type', None)}")
    return text_part(UNSUPPORTED_IMAGE_TEXT)


def translate_tool_result_content(block: ClaudeContentBlockToolResult) -> str:
    content = block.content
    if content is None:
        text = ""
    elif isinstance(content, str):
        text = content
    else:
        text = "\n".join(
            str(item.get("text", ""))
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        )
    if block.is_error:
        return TOOL_ERROR_PREFIX + text
    return text


def translate_user_message(content: str | list[ClaudeContentBlock]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"role": "user", "content": content}]

    tool_messages: list[dict[str, Any]] = []
    parts: list[dict[str, Any]] = []
    for block in content:
        if isinstance(block, ClaudeContentBlockText):
            parts.append(text_part(block.text))
        elif isinstance(block, ClaudeContentBlockImage):
            parts.append(translate_image_block(block))
        elif isinstance(block, ClaudeContentBlockToolResult):
            tool_messages.append(
                {
                    "role": "tool",
                    "tool_call_id": block.tool_use_id,
                    "content": translate_tool_result_content(block),
                }
            )
        elif isinstance(block, ClaudeContentBlockToolUse):
            logger.warning(f"Dropping tool_use block {block.id} found in a user turn")
        else:
            parts.append(text_part(unsupported_block_text(block.type)))

    # tool messages must directly follow the assistant turn that issued the calls
    messages = tool_messages
    if parts:
        messages.append({"role": "user", "content": collapse_parts(parts)})
    return messages


def translate_assistant_message(content: str | list[ClaudeContentBlock]) -> dict[str, Any]:
    if isinstance(content, str):
        return {"role": "assistant", "content": content or None}

    text = ""
    tool_calls = []
    for block in content:
        if isinstance(block, ClaudeContentBlockText):
            text += block.text
        elif isinstance(block, ClaudeContentBlockToolUse):
            tool_calls.append(
                {
                    "id": block.id,
                    "type": "function",
                    "function": {
                        "name": block.name,
                        "arguments": dump_tool_arguments(block.input),
                    },
                }
            )
        elif isinstance(block, ClaudeContentBlockToolResult):
            logger.warning(
                f"Dropping tool_result block {block.tool_use_id} found in an assistant turn"
            )
        else:
            text += unsupported_block_text(getattr(block, "type", None))

    message: dict[str, Any] = {"role": "assistant", "content": text or None}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return message


def translate_messages(
    messages: list[ClaudeMessage],
    system: str | list[ClaudeContentBlock] | None = None,
) -> list[dict[str, Any]]:
    """Translate a full Anthropic conversation, system prompt first."""
    result: list[dict[str, Any]] = []

    system_text = translate_system(system)
    if system_text:
        result.append({"role": "system", "content": system_text})

    for message in messages:
        if message.role == "user":
            result.extend(translate_user_message(message.content))
        elif message.role == "assistant":
            result.append(translate_assistant_message(message.content))
        else:
            logger.warning(f"Skipping message with unsupported role: {message.role}")

    return result
