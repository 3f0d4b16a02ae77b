"""
Pre-request hooks applied to translated Chat Completions requests.

Hooks run in registration order after translation and before dispatch. Each
receives the request dict and the client's headers and returns the request
for the next hook.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from .config import REASONING_EFFORTS, ModelFamily

logger = logging.getLogger(__name__)

ANTHROPIC_TIER_KEYWORDS = {"opus": "opus", "sonnet": "sonnet", "haiku": "haiku"}
GEMINI_TIER_KEYWORDS = {"flash": "haiku", "pro": "sonnet"}

THINKING_MIN_EFFORT = "medium"


class RequestHook(ABC):
    @abstractmethod
    def __call__(self, request: dict[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        ...


class HookManager:
    """Ordered pipeline of request hooks."""

    def __init__(self, hooks: list[RequestHook] | None = None):
        self.hooks: list[RequestHook] = list(hooks or [])

    def register(self, hook: RequestHook) -> None:
        self.hooks.append(hook)

    def run(self, request: dict[str, Any], headers: Mapping[str, str] | None = None) -> dict[str, Any]:
        headers = headers or {}
        for hook in self.hooks:
            request = hook(request, headers)
        return request


class ModelMappingHook(RequestHook):
    """Rewrite tier-style model names (``claude-sonnet-4``, ``gemini-2.5-flash``) to backend models."""

    def __init__(
        self,
        models: ModelFamily,
        keywords: Mapping[str, str] | None = None,
        default_tier: str | None = None,
    ):
        self.models = models
        self.keywords = dict(ANTHROPIC_TIER_KEYWORDS if keywords is None else keywords)
        self.default_tier = default_tier

    def resolve_tier(self, model: str) -> str | None:
        lowered = model.lower()
        for keyword, tier in self.keywords.items():
            if keyword in lowered:
                return tier
        return self.default_tier

    def __call__(self, request: dict[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        model = request.get("model") or ""
        tier = self.resolve_tier(model)
        if tier is None:
            logger.debug(f"MODEL MAPPING: {model} has no tier, passing through")
            return request

        request["model"] = self.models.model_for(tier)
        logger.info(f"MODEL MAPPING: {model} -> {request['model']} ({tier})")
        return request


def stronger_effort(effort: str, minimum: str) -> str:
    return max(effort, minimum, key=REASONING_EFFORTS.index)


class ThinkingModeHook(RequestHook):
    """
    Adapt a request to the capabilities of its backend model.

    Models without reasoning support lose ``reasoning_effort`` and have
    ``max_completion_tokens`` capped at the family ceiling. Reasoning models
    lose the sampling parameters they reject and get an effort per tier.
    ``thinking`` never reaches the backend.
    """

    def __init__(self, models: ModelFamily, reasoning_effort: str = "low"):
        self.models = models
        self.reasoning_effort = reasoning_effort

    def __call__(self, request: dict[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        thinking = request.pop("thinking", None)
        thinking_enabled = isinstance(thinking, dict) and thinking.get("type") == "enabled"
        model = request.get("model") or ""
        logger.debug(
            f"Model: {model}, thinking: {thinking_enabled}, "
            f"anthropic-beta: {headers.get('anthropic-beta', '')}"
        )

        if not self.models.supports_reasoning:
            request.pop("reasoning_effort", None)
            ceiling = self.models.max_tokens
            requested = request.get("max_completion_tokens")
            if ceiling and requested and requested > ceiling:
                logger.info(f"Capping max_completion_tokens {requested} -> {ceiling}")
                request["max_completion_tokens"] = ceiling
            return request

        for param in ("temperature", "top_p"):
            if request.pop(param, None) is not None:
                logger.debug(f"Stripped {param} for reasoning model {model}")

        tier = self.models.tier_of(model)
        if tier == "opus":
            request["reasoning_effort"] = "high"
        elif tier == "haiku":
            request.pop("reasoning_effort", None)
        elif tier == "sonnet":
            effort = self.reasoning_effort
            if thinking_enabled:
                effort = stronger_effort(effort, THINKING_MIN_EFFORT)
            if effort == "none":
                request.pop("reasoning_effort", None)
            else:
                request["reasoning_effort"] = effort
        else:
            logger.debug(f"No tier for {model}, leaving reasoning_effort untouched")
            return request

        logger.info(f"reasoning_effort for {model} ({tier}): {request.get('reasoning_effort', 'omitted')}")
        return request
