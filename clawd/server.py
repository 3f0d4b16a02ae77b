"""
HTTP surface of the proxy.

Anthropic Messages and Gemini generateContent requests are translated to
Chat Completions, passed through the hook pipeline, dispatched with retries,
and translated back. Every failure is reported in the client's own error
envelope.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from openai import AsyncOpenAI

from . import __version__
from .client import create_openai_client
from .config import Config
from .converters import FORMAT_ANTHROPIC, FORMAT_GEMINI, BaseConverter, get_converter
from .dispatcher import (
    DEFAULT_BACKOFF_POLICY,
    BackoffPolicy,
    DispatchError,
    DispatchFatal,
    dispatch,
)
from .errors import TranslationError, error_message
from .hook import HookManager, ModelMappingHook, ThinkingModeHook
from .utils import log_openai_api_error

logger = logging.getLogger(__name__)

SERVICE_NAME = "clawd"

STREAMING_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

FatalCallback = Callable[[BaseException], Any]


def build_hook_manager(config: Config, converter: BaseConverter) -> HookManager:
    return HookManager(
        [
            ModelMappingHook(config.models, converter.model_keywords, converter.default_tier),
            ThinkingModeHook(config.models, config.reasoning_effort),
        ]
    )


class ProxyHandler:
    """Runs one client protocol end to end: translate, hook, dispatch, translate back."""

    def __init__(
        self,
        config: Config,
        client: AsyncOpenAI,
        converter: BaseConverter,
        on_fatal: FatalCallback | None = None,
        backoff_policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.client = client
        self.converter = converter
        self.hooks = build_hook_manager(config, converter)
        self.on_fatal = on_fatal
        self.backoff_policy = backoff_policy
        self.sleep = sleep

    def _error_response(self, status_code: int, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=self.converter.error_body(status_code, message),
        )

    def _notify_fatal(self, error: BaseException) -> None:
        if self.on_fatal is None:
            return
        try:
            self.on_fatal(error)
        except Exception as e:
            logger.error(f"Fatal error callback failed: {e}")

    async def handle(
        self,
        raw_request: Request,
        *,
        model: str | None = None,
        stream: bool | None = None,
    ) -> Response:
        try:
            payload = await raw_request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return self._error_response(400, f"Request body is not valid JSON: {e}")
        if not isinstance(payload, dict):
            return self._error_response(400, "Request body must be a JSON object")

        return await self.process(payload, raw_request.headers, model=model, stream=stream)

    async def process(
        self,
        payload: dict[str, Any],
        headers: Mapping[str, str],
        *,
        model: str | None = None,
        stream: bool | None = None,
    ) -> Response:
        original_model = model or payload.get("model") or ""

        try:
            params = self.converter.translate_request(payload, model=model, stream=stream)
        except TranslationError as e:
            logger.warning(f"Request translation failed ({e.kind}): {e.message}")
            return self._error_response(e.status_code, e.message)

        params = self.hooks.run(params, headers)
        is_streaming = bool(params.get("stream"))
        logger.info(
            f"Dispatching {original_model} -> {params.get('model')} (stream={is_streaming})"
        )

        outcome = await dispatch(
            lambda: self.client.chat.completions.create(**params),
            self.backoff_policy,
            self.sleep,
        )

        if isinstance(outcome, DispatchFatal):
            log_openai_api_error(outcome.error, "fatal")
            self._notify_fatal(outcome.error)
            return self._error_response(outcome.status_code, error_message(outcome.error))
        if isinstance(outcome, DispatchError):
            log_openai_api_error(outcome.error, "dispatch")
            return self._error_response(outcome.status_code, error_message(outcome.error))

        if is_streaming:
            return StreamingResponse(
                self.converter.translate_stream(outcome.response, original_model),
                media_type="text/event-stream",
                headers=STREAMING_HEADERS,
            )

        try:
            body = self.converter.translate_response(outcome.response, original_model)
        except TranslationError as e:
            logger.error(f"Response translation failed ({e.kind}): {e.message}")
            return self._error_response(e.status_code, e.message)
        return JSONResponse(content=body)


def create_app(
    config: Config,
    client: AsyncOpenAI | None = None,
    on_fatal: FatalCallback | None = None,
    backoff_policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FastAPI:
    """Build the proxy application.

    Args:
        config: Validated proxy configuration
        client: Backend client; created from ``config`` when omitted
        on_fatal: Called once with the error whenever the backend answers 403
        backoff_policy: Retry policy for backend calls
        sleep: Coroutine used to wait between retries
    """
    if client is None:
        client = create_openai_client(config)

    app = FastAPI(title=SERVICE_NAME, version=__version__)
    handlers = {
        format_type: ProxyHandler(
            config,
            client,
            get_converter(format_type),
            on_fatal=on_fatal,
            backoff_policy=backoff_policy,
            sleep=sleep,
        )
        for format_type in (FORMAT_ANTHROPIC, FORMAT_GEMINI)
    }
    app.state.config = config
    app.state.handlers = handlers

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug(f"Request: {request.method} {request.url.path}")
        return await call_next(request)

    @app.post("/v1/messages")
    async def create_message(raw_request: Request):
        """Anthropic Messages endpoint (streaming decided by the body)."""
        return await handlers[FORMAT_ANTHROPIC].handle(raw_request)

    @app.post("/v1beta/models/{model_path:path}:generateContent")
    async def gemini_generate_content(model_path: str, raw_request: Request):
        """Gemini GenerateContent endpoint (non-streaming)."""
        return await handlers[FORMAT_GEMINI].handle(raw_request, model=model_path, stream=False)

    @app.post("/v1beta/models/{model_path:path}:streamGenerateContent")
    async def gemini_stream_generate_content(model_path: str, raw_request: Request):
        """Gemini StreamGenerateContent endpoint."""
        return await handlers[FORMAT_GEMINI].handle(raw_request, model=model_path, stream=True)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "provider": config.provider,
            "model_family": config.model_family,
            "models": {
                "haiku": config.models.haiku,
                "sonnet": config.models.sonnet,
                "opus": config.models.opus,
            },
            "endpoints": [
                "POST /v1/messages",
                "POST /v1beta/models/{model}:generateContent",
                "POST /v1beta/models/{model}:streamGenerateContent",
                "GET /health",
            ],
        }

    return app
