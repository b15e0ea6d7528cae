"""Monitoring and observability utilities."""

import logging
import os
import time
from contextlib import contextmanager
from functools import wraps
from typing import Generator, Optional

import structlog
from constants import (
    ENV_LOG_LEVEL,
    ERROR_DYNAMODB_OPERATION_FAILED,
    ERROR_MODEL_INIT_FAILED,
    ERROR_S3_OPERATION_FAILED,
    ERROR_VALIDATION_FAILED,
)
from exceptions import ThreatGenerationError

logging.basicConfig(level=os.environ.get(ENV_LOG_LEVEL, "INFO").upper())
logger = structlog.get_logger()


@contextmanager
def operation_context(
    operation_name: str, threat_model_id: str, phase: Optional[str] = None
) -> Generator[None, None, None]:
    """
    Time an operation and log its outcome.

    The threat model id and phase are bound to structlog's context variables
    for the duration of the block, so every event logged inside it carries
    them. Nested blocks override the phase and restore it on exit.

    Args:
        operation_name: Name of the enclosing operation.
        threat_model_id: Threat model being worked on.
        phase: Step of a generation attempt, if any.
    """
    context = {"threat_model_id": threat_model_id}
    if phase is not None:
        context["phase"] = phase

    start_time = time.perf_counter()
    with structlog.contextvars.bound_contextvars(**context):
        logger.info("Operation started", operation=operation_name)
        try:
            yield
        except Exception as e:
            logger.error(
                "Operation failed",
                operation=operation_name,
                duration_ms=_elapsed_ms(start_time),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        logger.info(
            "Operation completed",
            operation=operation_name,
            duration_ms=_elapsed_ms(start_time),
        )


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


def with_error_context(operation_name: str):
    """Decorator to add error context to operations.

    Pipeline errors are re-raised unchanged; anything else is wrapped in
    ThreatGenerationError.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ThreatGenerationError:
                raise
            except Exception as e:
                logger.error(f"Error in {operation_name}: {e}", exc_info=True)

                error_message = _get_error_message_for_operation(operation_name, str(e))
                raise ThreatGenerationError(error_message) from e

        return wrapper

    return decorator


def _get_error_message_for_operation(operation_name: str, original_error: str) -> str:
    """Get appropriate error message based on operation type."""
    operation_lower = operation_name.lower()

    if "dynamodb" in operation_lower or "database" in operation_lower:
        return f"{ERROR_DYNAMODB_OPERATION_FAILED}: {original_error}"
    elif "model" in operation_lower or "bedrock" in operation_lower:
        return f"{ERROR_MODEL_INIT_FAILED}: {original_error}"
    elif "s3" in operation_lower or "bucket" in operation_lower:
        return f"{ERROR_S3_OPERATION_FAILED}: {original_error}"
    elif "validation" in operation_lower or "validate" in operation_lower:
        return f"{ERROR_VALIDATION_FAILED}: {original_error}"
    else:
        return f"Failed to {operation_name}: {original_error}"
