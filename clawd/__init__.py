"""
clawd - run Claude Code or Gemini CLI against an OpenAI Chat Completions backend.

This package provides protocol translation between the Anthropic Messages /
Gemini generateContent client protocols and OpenAI Chat Completions.
"""

__version__ = "0.1.0"

from .config import Config
from .types import ClaudeMessagesRequest, ClaudeMessagesResponse

__all__ = [
    "Config",
    "ClaudeMessagesRequest",
    "ClaudeMessagesResponse",
]
