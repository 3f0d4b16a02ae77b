"""
Converters package for client protocol translation.

Every converter translates between one client-facing protocol and the
OpenAI Chat Completions backend.

Supported client formats:
- Anthropic Messages
- Gemini GenerateContent
"""

from .base import BaseConverter
from .anthropic import AnthropicConverter
from .gemini import GeminiConverter, ToolCallIdentity
from ._anthropic_streaming import AnthropicStreamingConverter, StreamState, ToolCallState
from ._gemini_streaming import GeminiStreamingConverter

# Format identifiers
FORMAT_ANTHROPIC = "anthropic"
FORMAT_GEMINI = "gemini"


def get_converter(format_type: str) -> BaseConverter:
    """
    Factory function to get the converter for a client format.

    Args:
        format_type: One of "anthropic", "gemini"

    Returns:
        Appropriate converter instance
    """
    if format_type == FORMAT_ANTHROPIC:
        return AnthropicConverter()
    elif format_type == FORMAT_GEMINI:
        return GeminiConverter()
    else:
        raise ValueError(f"Unknown format type: {format_type}")


__all__ = [
    "BaseConverter",
    "AnthropicConverter",
    "AnthropicStreamingConverter",
    "GeminiConverter",
    "GeminiStreamingConverter",
    "StreamState",
    "ToolCallState",
    "ToolCallIdentity",
    "get_converter",
    "FORMAT_ANTHROPIC",
    "FORMAT_GEMINI",
]
