"""
Backend client creation.

The SDK's own retries are disabled; retrying is the dispatcher's job.
"""

import logging

import httpx
from openai import AsyncAzureOpenAI, AsyncOpenAI

from .config import Config

logger = logging.getLogger(__name__)


def create_openai_client(config: Config) -> AsyncOpenAI:
    """Create the Chat Completions client for the configured provider.

    Args:
        config: Validated proxy configuration

    Returns:
        AsyncAzureOpenAI in Azure mode, AsyncOpenAI otherwise
    """
    timeout = httpx.Timeout(config.request_timeout)

    if config.use_azure:
        client = AsyncAzureOpenAI(
            api_key=config.azure_api_key,
            azure_endpoint=config.azure_endpoint,
            api_version=config.azure_api_version,
            timeout=timeout,
            max_retries=0,
        )
        logger.info(
            f"Create Azure OpenAI Client: endpoint={config.azure_endpoint}, api_version={config.azure_api_version}"
        )
        return client

    client = AsyncOpenAI(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        timeout=timeout,
        max_retries=0,
    )
    logger.info(f"Create OpenAI Client: base_url={config.openai_base_url}")
    return client
