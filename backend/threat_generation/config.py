"""Environment-driven configuration for the threat generation pipeline."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from constants import (
    DEFAULT_BEDROCK_MODEL_ID,
    DEFAULT_CONTEXT_FILE_TABLE,
    DEFAULT_FILE_URL_EXPIRY_SECONDS,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_OPENAI_MODEL_ID,
    DEFAULT_REGION,
    DEFAULT_STALE_GENERATION_SECONDS,
    DEFAULT_TEMPERATURE,
    DEFAULT_THREAT_MODEL_TABLE,
    DEFAULT_TICKET_TABLE,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_UPLOAD_BASE_URL,
    DEFAULT_UPLOAD_DIR,
    ENV_CONTEXT_FILE_TABLE,
    ENV_FILE_URL_EXPIRY_SECONDS,
    ENV_GENERATION_MAX_WORKERS,
    ENV_LLM_MAX_TOKENS,
    ENV_LLM_TEMPERATURE,
    ENV_LLM_TIMEOUT_SECONDS,
    ENV_MODEL_ID,
    ENV_MODEL_PROVIDER,
    ENV_OPENAI_API_KEY,
    ENV_OPENAI_BASE_URL,
    ENV_REGION,
    ENV_S3_BUCKET,
    ENV_S3_KEY_PREFIX,
    ENV_STALE_GENERATION_SECONDS,
    ENV_STORAGE_PROVIDER,
    ENV_THREAT_MODEL_TABLE,
    ENV_TICKET_TABLE,
    ENV_UPLOAD_BASE_URL,
    ENV_UPLOAD_DIR,
    MAX_MAX_TOKENS,
    MAX_TEMPERATURE,
    MAX_TIMEOUT_SECONDS,
    MAX_WORKERS,
    MIN_MAX_TOKENS,
    MIN_TEMPERATURE,
    MIN_TIMEOUT_SECONDS,
    MIN_WORKERS,
    MODEL_PROVIDER_BEDROCK,
    MODEL_PROVIDER_OPENAI,
    STORAGE_PROVIDER_LOCAL,
    STORAGE_PROVIDER_S3,
    SUPPORTED_MODEL_PROVIDERS,
)
from monitoring import logger, with_error_context


@dataclass(frozen=True)
class GenerationConfig:
    """Settings shared by the provider factory, storage and orchestrator."""

    model_provider: str = MODEL_PROVIDER_BEDROCK
    model_id: str = DEFAULT_BEDROCK_MODEL_ID
    region: str = DEFAULT_REGION
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS
    stale_generation_seconds: int = DEFAULT_STALE_GENERATION_SECONDS
    storage_provider: str = STORAGE_PROVIDER_LOCAL
    upload_dir: str = DEFAULT_UPLOAD_DIR
    upload_base_url: str = DEFAULT_UPLOAD_BASE_URL
    s3_bucket: Optional[str] = None
    s3_key_prefix: str = ""
    file_url_expiry_seconds: int = DEFAULT_FILE_URL_EXPIRY_SECONDS
    threat_model_table: str = DEFAULT_THREAT_MODEL_TABLE
    context_file_table: str = DEFAULT_CONTEXT_FILE_TABLE
    ticket_table: str = DEFAULT_TICKET_TABLE

    def __post_init__(self):
        self._validate()

    def _validate(self) -> None:
        if self.model_provider not in SUPPORTED_MODEL_PROVIDERS:
            raise ValueError(
                f"Unsupported model provider: {self.model_provider}. "
                f"Supported providers: {', '.join(SUPPORTED_MODEL_PROVIDERS)}"
            )
        if self.storage_provider not in (STORAGE_PROVIDER_LOCAL, STORAGE_PROVIDER_S3):
            raise ValueError(f"Unsupported storage provider: {self.storage_provider}")
        if self.storage_provider == STORAGE_PROVIDER_S3 and not self.s3_bucket:
            raise ValueError(f"{ENV_S3_BUCKET} is required for S3 storage")
        if not MIN_MAX_TOKENS <= self.max_tokens <= MAX_MAX_TOKENS:
            raise ValueError(
                f"max_tokens must be between {MIN_MAX_TOKENS} and {MAX_MAX_TOKENS}"
            )
        if not MIN_TEMPERATURE <= self.temperature <= MAX_TEMPERATURE:
            raise ValueError(
                f"temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}"
            )
        if not MIN_TIMEOUT_SECONDS <= self.timeout_seconds <= MAX_TIMEOUT_SECONDS:
            raise ValueError(
                f"timeout_seconds must be between {MIN_TIMEOUT_SECONDS} "
                f"and {MAX_TIMEOUT_SECONDS}"
            )
        if not MIN_WORKERS <= self.max_workers <= MAX_WORKERS:
            raise ValueError(
                f"max_workers must be between {MIN_WORKERS} and {MAX_WORKERS}"
            )
        if self.file_url_expiry_seconds <= 0:
            raise ValueError("file_url_expiry_seconds must be positive")

    @classmethod
    @with_error_context("load generation configuration")
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GenerationConfig":
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            GenerationConfig: Validated configuration.
        """
        env = os.environ if environ is None else environ
        provider = env.get(ENV_MODEL_PROVIDER, MODEL_PROVIDER_BEDROCK).lower()
        default_model = (
            DEFAULT_OPENAI_MODEL_ID
            if provider == MODEL_PROVIDER_OPENAI
            else DEFAULT_BEDROCK_MODEL_ID
        )

        config = cls(
            model_provider=provider,
            model_id=env.get(ENV_MODEL_ID) or default_model,
            region=env.get(ENV_REGION, DEFAULT_REGION),
            openai_api_key=env.get(ENV_OPENAI_API_KEY) or None,
            openai_base_url=env.get(ENV_OPENAI_BASE_URL) or None,
            max_tokens=int(env.get(ENV_LLM_MAX_TOKENS, DEFAULT_MAX_TOKENS)),
            temperature=float(env.get(ENV_LLM_TEMPERATURE, DEFAULT_TEMPERATURE)),
            timeout_seconds=int(env.get(ENV_LLM_TIMEOUT_SECONDS, DEFAULT_TIMEOUT_SECONDS)),
            max_workers=int(env.get(ENV_GENERATION_MAX_WORKERS, DEFAULT_MAX_WORKERS)),
            stale_generation_seconds=int(
                env.get(ENV_STALE_GENERATION_SECONDS, DEFAULT_STALE_GENERATION_SECONDS)
            ),
            storage_provider=env.get(ENV_STORAGE_PROVIDER, STORAGE_PROVIDER_LOCAL).lower(),
            upload_dir=env.get(ENV_UPLOAD_DIR, DEFAULT_UPLOAD_DIR),
            upload_base_url=env.get(ENV_UPLOAD_BASE_URL, DEFAULT_UPLOAD_BASE_URL),
            s3_bucket=env.get(ENV_S3_BUCKET) or None,
            s3_key_prefix=env.get(ENV_S3_KEY_PREFIX, ""),
            file_url_expiry_seconds=int(
                env.get(ENV_FILE_URL_EXPIRY_SECONDS, DEFAULT_FILE_URL_EXPIRY_SECONDS)
            ),
            threat_model_table=env.get(ENV_THREAT_MODEL_TABLE, DEFAULT_THREAT_MODEL_TABLE),
            context_file_table=env.get(ENV_CONTEXT_FILE_TABLE, DEFAULT_CONTEXT_FILE_TABLE),
            ticket_table=env.get(ENV_TICKET_TABLE, DEFAULT_TICKET_TABLE),
        )

        logger.info(
            "Generation configuration loaded",
            model_provider=config.model_provider,
            model_id=config.model_id,
            storage_provider=config.storage_provider,
            max_workers=config.max_workers,
            timeout_seconds=config.timeout_seconds,
        )
        return config
