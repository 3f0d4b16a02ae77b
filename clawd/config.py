"""
Configuration management for the clawd package.
This module handles configuration loading, validation and logging setup.

Priority for every setting: environment variable > config.json > default.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path

import httpx

from .config_manager import get_config_file, load_config_file
from .types import ModelDefaults

logger = logging.getLogger(__name__)

PROVIDER_OPENAI = "openai"
PROVIDER_AZURE = "azure"
PROVIDERS = (PROVIDER_OPENAI, PROVIDER_AZURE)

# Ordered from weakest to strongest; "none" omits the parameter.
REASONING_EFFORTS = ("none", "minimal", "low", "medium", "high")

TIERS = ("haiku", "sonnet", "opus")


@dataclass(frozen=True)
class ModelFamily:
    """Concrete backend models per tier plus the family's capabilities."""

    name: str
    haiku: str
    sonnet: str
    opus: str
    supports_reasoning: bool
    max_tokens: int | None = None

    def model_for(self, tier: str) -> str:
        return getattr(self, tier)

    def tier_of(self, model: str) -> str | None:
        """Resolve a concrete model back to its tier by exact match.

        Tiers sharing a model resolve to sonnet so the configured effort applies.
        """
        for tier in ("sonnet", "haiku", "opus"):
            if model == self.model_for(tier):
                return tier
        return None


MODEL_FAMILIES = {
    "gpt-5": ModelFamily(
        name="gpt-5",
        haiku="gpt-5-mini",
        sonnet="gpt-5",
        opus="gpt-5-high",
        supports_reasoning=True,
    ),
    "gpt-4o": ModelFamily(
        name="gpt-4o",
        haiku="gpt-4o-mini",
        sonnet="gpt-4o",
        opus="gpt-4o",
        supports_reasoning=False,
        max_tokens=16384,
    ),
}

DEFAULT_MODEL_FAMILY = "gpt-4o"


class ConfigError(ValueError):
    """Raised by Config.validate with every problem found, one per line."""


def parse_token_value(value, default_value=None):
    """Parse token value that can be in 'k' format (16k, 128K) or a specific number.

    Examples:
        parse_token_value("16K") -> 16000
        parse_token_value("128k") -> 128000
        parse_token_value(8000) -> 8000
    """
    if value is None:
        return default_value

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        value = value.strip().lower()
        multiplier = 1
        if value.endswith("k"):
            value = value[:-1]
            multiplier = 1000
        try:
            return int(float(value) * multiplier)
        except ValueError:
            logger.warning(
                f"Could not parse token value '{value}', using default {default_value}"
            )
            return default_value

    logger.warning(
        f"Unexpected token value type '{type(value)}' for value '{value}', using default {default_value}"
    )
    return default_value


def _parse_port(value):
    if value is None or value == "":
        return ModelDefaults.DEFAULT_PORT
    try:
        return int(value)
    except (TypeError, ValueError):
        # validate() reports it
        return value


def _is_valid_url(value: str) -> bool:
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError):
        return False
    return url.scheme in ("http", "https") and bool(url.host)


class Config:
    """Proxy server configuration."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        model_family: str | None = None,
        use_azure: bool | None = None,
        port: int | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        file_config = load_config_file(config_path)
        self.config_file = config_path or get_config_file()

        # config.json may carry an "env" section; real environment variables win
        env: dict[str, str] = {
            key: str(value) for key, value in (file_config.get("env") or {}).items()
        }
        env.update(os.environ if environ is None else environ)

        def setting(env_names, file_key, default=None):
            for name in env_names:
                if env.get(name):
                    return env[name]
            if file_config.get(file_key) is not None:
                return file_config[file_key]
            return default

        # Backend configuration
        self.openai_api_key = setting(["OPENAI_API_KEY"], "openai_api_key")
        self.openai_base_url = setting(
            ["OPENAI_BASE_URL"], "openai_base_url", ModelDefaults.DEFAULT_OPENAI_BASE_URL
        )
        self.azure_endpoint = setting(["AZURE_OPENAI_ENDPOINT"], "azure_endpoint")
        self.azure_api_key = setting(["AZURE_OPENAI_API_KEY"], "azure_api_key")
        self.azure_api_version = setting(
            ["AZURE_API_VERSION", "OPENAI_API_VERSION"],
            "azure_api_version",
            ModelDefaults.DEFAULT_AZURE_API_VERSION,
        )
        self.request_timeout = float(
            setting(
                ["CLAWD_REQUEST_TIMEOUT"],
                "request_timeout",
                ModelDefaults.DEFAULT_REQUEST_TIMEOUT,
            )
        )

        # Server configuration
        self.host = setting(["CLAWD_HOST"], "host", ModelDefaults.DEFAULT_HOST)
        self.port = port if port is not None else _parse_port(
            setting(["CLAWD_PORT"], "port")
        )

        # Model selection
        if use_azure is None:
            provider = str(setting(["CLAWD_PROVIDER"], "provider", PROVIDER_OPENAI)).lower()
        else:
            provider = PROVIDER_AZURE if use_azure else PROVIDER_OPENAI
        self.provider = provider
        self.use_azure = provider == PROVIDER_AZURE
        self.model_family = model_family or setting(
            ["CLAWD_MODEL_FAMILY"], "model_family", DEFAULT_MODEL_FAMILY
        )
        self.reasoning_effort = str(
            setting(
                ["CLAWD_REASONING_EFFORT"],
                "reasoning_effort",
                ModelDefaults.DEFAULT_REASONING_EFFORT,
            )
        ).lower()
        self.max_tokens_override = parse_token_value(
            setting(["CLAWD_MAX_TOKENS"], "max_tokens")
        )
        self.models = self._resolve_models(env)

        # Logging configuration
        self.log_file_path = Path(
            setting(["CLAWD_LOG"], "log_file_path", ModelDefaults.DEFAULT_LOG_FILE)
        ).expanduser()
        self.log_level = str(
            setting(["LOG_LEVEL"], "log_level", ModelDefaults.DEFAULT_LOG_LEVEL)
        ).upper()

    def _resolve_models(self, env: Mapping[str, str]) -> ModelFamily:
        family = MODEL_FAMILIES.get(self.model_family, MODEL_FAMILIES[DEFAULT_MODEL_FAMILY])

        # Tier models can be pointed at custom deployments
        overrides = {
            tier: env[f"AZURE_DEPLOYMENT_{tier.upper()}"]
            for tier in TIERS
            if env.get(f"AZURE_DEPLOYMENT_{tier.upper()}")
        }
        max_tokens = family.max_tokens
        if self.use_azure and max_tokens is None:
            max_tokens = ModelDefaults.DEFAULT_AZURE_MAX_TOKENS
        if self.max_tokens_override:
            max_tokens = self.max_tokens_override
        return replace(family, max_tokens=max_tokens, **overrides)

    @property
    def proxy_base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def validate(self) -> None:
        """Check the configuration, raising ConfigError listing every problem."""
        errors = []

        if self.provider not in PROVIDERS:
            errors.append(
                f"Invalid provider: {self.provider}. Valid options: {', '.join(PROVIDERS)}"
            )

        if self.use_azure:
            if not self.azure_endpoint:
                errors.append("AZURE_OPENAI_ENDPOINT environment variable is required for Azure mode")
            elif not _is_valid_url(self.azure_endpoint):
                errors.append(f"Invalid AZURE_OPENAI_ENDPOINT: {self.azure_endpoint}. Must be a valid URL")
            if not self.azure_api_key:
                errors.append("AZURE_OPENAI_API_KEY environment variable is required for Azure mode")
        else:
            if not self.openai_api_key:
                errors.append("OPENAI_API_KEY environment variable is required")
            if self.openai_base_url and not _is_valid_url(self.openai_base_url):
                errors.append(f"Invalid OPENAI_BASE_URL: {self.openai_base_url}. Must be a valid URL")

        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            errors.append(f"Invalid port: {self.port}. Must be between 1 and 65535")

        if self.model_family not in MODEL_FAMILIES:
            errors.append(
                f"Invalid model family: {self.model_family}. Valid options: {', '.join(MODEL_FAMILIES)}"
            )

        if self.reasoning_effort not in REASONING_EFFORTS:
            errors.append(
                f"Invalid reasoning effort: {self.reasoning_effort}. "
                f"Valid options: {', '.join(REASONING_EFFORTS)}"
            )

        if errors:
            raise ConfigError("\n".join(errors))

    def anthropic_env_vars(self) -> dict[str, str]:
        """Environment that points Claude Code at this proxy."""
        return {
            "ANTHROPIC_BASE_URL": self.proxy_base_url,
            "ANTHROPIC_AUTH_TOKEN": ModelDefaults.PROXY_AUTH_TOKEN,
            "ANTHROPIC_DEFAULT_HAIKU_MODEL": self.models.haiku,
            "ANTHROPIC_DEFAULT_SONNET_MODEL": self.models.sonnet,
            "ANTHROPIC_DEFAULT_OPUS_MODEL": self.models.opus,
        }

    def gemini_env_vars(self) -> dict[str, str]:
        """Environment that points Gemini CLI at this proxy."""
        return {
            "GOOGLE_GEMINI_BASE_URL": self.proxy_base_url,
            "GEMINI_API_KEY": ModelDefaults.PROXY_AUTH_TOKEN,
        }


# Create a filter to block any log messages containing specific strings
class MessageFilter(logging.Filter):
    blocked_phrases = ("HTTP Request:",)

    def filter(self, record):
        message = record.getMessage()
        return not any(phrase in message for phrase in self.blocked_phrases)


LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(config: Config) -> None:
    """Setup file logging; safe to call more than once.

    There is no console handler: the launched CLI owns the terminal.
    """
    root_logger = logging.getLogger()
    log_level = getattr(logging, config.log_level, None)
    if not isinstance(log_level, int):
        logger.warning(f"Invalid log level: {config.log_level}, using INFO")
        log_level = logging.INFO
    root_logger.setLevel(log_level)

    # Configure uvicorn log levels
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(
        logging.INFO if log_level <= logging.INFO else logging.WARNING
    )

    # Configure openai and httpx log levels to reduce noise
    library_level = logging.INFO if log_level <= logging.DEBUG else logging.WARNING
    logging.getLogger("openai").setLevel(library_level)
    logging.getLogger("httpx").setLevel(library_level)

    log_path = Path(config.log_file_path).resolve()
    for handler in root_logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_path:
            return

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        mode="a",
        maxBytes=2 * 1024 * 1024,  # 2MB
        backupCount=1,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.addFilter(MessageFilter())
    root_logger.addHandler(file_handler)

    logger.info(f"Logging configured: level={config.log_level}, file={log_path}")
