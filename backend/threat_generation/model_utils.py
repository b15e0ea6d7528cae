"""
Threat Generation Model Module.

This module provides provider initialization for the generation pipeline.
It builds the LangChain chat model for the configured backend (AWS Bedrock
or OpenAI) and wraps it in the matching LLMProvider.
"""

from typing import Any, Optional

import boto3
from botocore.config import Config
from config import GenerationConfig
from constants import (
    AWS_SERVICE_BEDROCK_RUNTIME,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ENV_OPENAI_API_KEY,
    MODEL_PROVIDER_BEDROCK,
    MODEL_PROVIDER_OPENAI,
)
from exceptions import ModelProviderError
from langchain_aws.chat_models.bedrock import ChatBedrockConverse
from langchain_openai.chat_models import ChatOpenAI
from model_service import BedrockProvider, LLMProvider, OpenAIProvider
from monitoring import logger, operation_context, with_error_context


@with_error_context("create Bedrock client")
def _create_bedrock_client(config: GenerationConfig) -> Any:
    """
    Create Bedrock runtime client with the request timeout applied.

    Retries are disabled; a failed or timed out call is reported once.

    Args:
        config: Generation configuration.

    Returns:
        boto3.client: Configured Bedrock runtime client.
    """
    client_config = Config(
        read_timeout=config.timeout_seconds,
        connect_timeout=DEFAULT_CONNECT_TIMEOUT_SECONDS,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )

    logger.debug(
        "Creating Bedrock client",
        region=config.region,
        timeout=config.timeout_seconds,
    )

    client = boto3.client(
        service_name=AWS_SERVICE_BEDROCK_RUNTIME,
        region_name=config.region,
        config=client_config,
    )

    logger.info("Bedrock client created successfully", region=config.region)
    return client


def _create_bedrock_provider(
    config: GenerationConfig, bedrock_client: Optional[Any] = None
) -> BedrockProvider:
    client = bedrock_client or _create_bedrock_client(config)
    chat_model = ChatBedrockConverse(
        client=client,
        region_name=config.region,
        model_id=config.model_id,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
    return BedrockProvider(
        chat_model,
        config.model_id,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout_seconds=config.timeout_seconds,
    )


def _create_openai_provider(config: GenerationConfig) -> OpenAIProvider:
    if not config.openai_api_key:
        raise ModelProviderError(f"{ENV_OPENAI_API_KEY} environment variable not set")

    model_config = {
        "model": config.model_id,
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
        "api_key": config.openai_api_key,
        "timeout": config.timeout_seconds,
        "max_retries": 0,
    }
    if config.openai_base_url:
        model_config["base_url"] = config.openai_base_url

    return OpenAIProvider(
        ChatOpenAI(**model_config),
        config.model_id,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout_seconds=config.timeout_seconds,
    )


def create_provider(
    config: GenerationConfig, bedrock_client: Optional[Any] = None
) -> LLMProvider:
    """
    Initialize the LLM provider selected by the configuration.

    Args:
        config: Generation configuration.
        bedrock_client: Optional pre-configured Bedrock client for testing (Bedrock only).

    Returns:
        LLMProvider: Ready-to-use provider.

    Raises:
        ModelProviderError: If the provider is unsupported or missing credentials.
    """
    with operation_context("initialize_provider", "model-init"):
        logger.info(
            "Starting provider initialization",
            provider=config.model_provider,
            model_id=config.model_id,
        )

        if config.model_provider == MODEL_PROVIDER_BEDROCK:
            provider = _create_bedrock_provider(config, bedrock_client)
        elif config.model_provider == MODEL_PROVIDER_OPENAI:
            provider = _create_openai_provider(config)
        else:
            raise ModelProviderError(
                f"Unsupported model provider: {config.model_provider}. "
                f"Supported providers: {MODEL_PROVIDER_BEDROCK}, {MODEL_PROVIDER_OPENAI}"
            )

        logger.info("Provider initialized", provider=provider.name)
        return provider
