"""
Base converter protocol for client protocol translation.

Defines the interface every client-facing converter implements. The backend
side is always OpenAI Chat Completions: requests are translated into
Chat Completions parameters, and ``ChatCompletion`` / ``ChatCompletionChunk``
objects are translated back into the client's wire format.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from openai.types.chat import ChatCompletion, ChatCompletionChunk


class BaseConverter(ABC):
    """
    Abstract base class for client protocol converters.

    - translate_request: client request payload -> Chat Completions params
    - translate_response: ChatCompletion -> client response body
    - translate_stream: ChatCompletionChunk stream -> client SSE strings
    - error_body: status code and message -> client error envelope
    """

    #: Model-name keyword -> tier used by the model mapping hook
    model_keywords: dict[str, str] = {}
    #: Tier used when no keyword matches (None passes the model through)
    default_tier: str | None = None

    @abstractmethod
    def translate_request(
        self,
        payload: dict[str, Any],
        *,
        model: str | None = None,
        stream: bool | None = None,
    ) -> dict[str, Any]:
        """
        Convert a client request into Chat Completions parameters.

        Args:
            payload: Raw request body in this converter's format
            model: Model name taken from the route, when the protocol puts it there
            stream: Streaming flag taken from the route, when the protocol puts it there

        Returns:
            Keyword arguments for ``chat.completions.create``

        Raises:
            TranslationError: If the payload cannot be translated
        """
        ...

    @abstractmethod
    def translate_response(
        self,
        response: ChatCompletion,
        original_model: str,
    ) -> dict[str, Any]:
        """
        Convert a non-streaming backend response to this format.

        Args:
            response: Backend ChatCompletion
            original_model: Model name the client asked for

        Raises:
            TranslationError: If the response carries no choices
        """
        ...

    @abstractmethod
    def translate_stream(
        self,
        stream: AsyncIterator[ChatCompletionChunk],
        original_model: str,
    ) -> AsyncIterator[str]:
        """
        Convert a backend chunk stream to SSE strings in this format.

        Errors raised by ``stream`` are reported in-band as the protocol's
        terminal error event; the returned iterator never raises them.
        """
        ...

    @abstractmethod
    def error_body(self, status_code: int, message: str) -> dict[str, Any]:
        """Build this protocol's error envelope."""
        ...
