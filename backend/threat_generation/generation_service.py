"""
Generation orchestrator.

Admits at most one generation attempt per threat model, runs it on a
bounded worker pool and guarantees every admitted attempt ends in exactly
one terminal write: ``completed`` with the ranked threats, or ``failed``
with a non-empty error message.
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Optional

from config import GenerationConfig
from constants import (
    ERROR_EMPTY_CONTEXT,
    ERROR_STALE_GENERATION,
    ERROR_THREAT_MODEL_NOT_FOUND,
    FINISH_REASON_LENGTH,
    MESSAGE_COMPLETE,
    MESSAGE_CONTEXT,
    MESSAGE_FINALIZING,
    MESSAGE_MODEL_CALL,
    PHASE_ASSEMBLE,
    PHASE_INVOKE,
    PHASE_LOAD,
    PHASE_NORMALIZE,
    PHASE_PERSIST,
    PROGRESS_COMPLETE,
    PROGRESS_CONTEXT,
    PROGRESS_FINALIZING,
    PROGRESS_MODEL_CALL,
    RESPONSE_FORMAT_JSON,
    ThreatModelStatus,
)
from content import Message
from exceptions import EmptyContextError, NotFoundError
from message_builder import ContextAssembler
from model_service import LLMProvider
from monitoring import logger, operation_context
from normalizer import normalize
from prompts import system_prompt
from repository import ThreatModelRepository
from state import GenerationStatus
from storage import StorageResolver


class GenerationService:
    """Starts generation attempts and reports their status."""

    def __init__(
        self,
        repository: ThreatModelRepository,
        storage: StorageResolver,
        config: GenerationConfig,
        provider: Optional[LLMProvider] = None,
        provider_factory: Optional[Callable[[], LLMProvider]] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        if provider is None and provider_factory is None:
            raise ValueError("Either provider or provider_factory is required")

        self.repository = repository
        self.config = config
        self.assembler = ContextAssembler(storage, config.file_url_expiry_seconds)
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="threat-generation"
        )

        self._provider = provider
        self._provider_factory = provider_factory
        self._provider_lock = Lock()
        self._active_lock = Lock()
        self._active_generations = 0

    @property
    def active_generations(self) -> int:
        with self._active_lock:
            return self._active_generations

    def _change_active(self, delta: int) -> None:
        with self._active_lock:
            self._active_generations += delta
            active = self._active_generations
        logger.debug("Active generations changed", active_generations=active)

    def _get_provider(self) -> LLMProvider:
        # Resolved on first use; factory errors fail the current attempt
        with self._provider_lock:
            if self._provider is None:
                self._provider = self._provider_factory()
            return self._provider

    def start_generation(self, threat_model_id: str) -> Dict[str, bool]:
        """
        Accept a generation request and return immediately.

        Raises:
            NotFoundError: If the threat model does not exist.
            ConflictError: If an attempt is already in flight. The running
                attempt is not affected.
        """
        with operation_context("start_generation", threat_model_id):
            self.repository.mark_generating(threat_model_id)

            self._change_active(1)
            try:
                self.executor.submit(self._run_generation, threat_model_id)
            except Exception as e:
                self._change_active(-1)
                logger.error(
                    "Failed to schedule generation",
                    threat_model_id=threat_model_id,
                    error=str(e),
                )
                self.repository.update_status(
                    threat_model_id,
                    ThreatModelStatus.FAILED,
                    error=str(e) or type(e).__name__,
                )
                raise

            logger.info(
                "Generation accepted",
                threat_model_id=threat_model_id,
                active_generations=self.active_generations,
            )
            return {"accepted": True}

    def get_generation_status(self, threat_model_id: str) -> GenerationStatus:
        threat_model = self.repository.load_threat_model(threat_model_id)
        if threat_model is None:
            raise NotFoundError(ERROR_THREAT_MODEL_NOT_FOUND)

        status = threat_model.status
        if status == ThreatModelStatus.GENERATING:
            return GenerationStatus(
                status=status,
                progress=threat_model.generation_progress,
                message=threat_model.generation_message,
            )
        if status == ThreatModelStatus.COMPLETED:
            return GenerationStatus(
                status=status,
                progress=PROGRESS_COMPLETE,
                message=threat_model.generation_message or MESSAGE_COMPLETE,
            )
        if status == ThreatModelStatus.FAILED:
            return GenerationStatus(
                status=status, progress=0, error=threat_model.generation_error
            )
        return GenerationStatus(status=status, progress=0)

    def _run_generation(self, threat_model_id: str) -> None:
        """Background unit of work. Never raises."""
        try:
            with operation_context("threat_generation", threat_model_id):
                self._generate(threat_model_id)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            try:
                self.repository.update_status(
                    threat_model_id, ThreatModelStatus.FAILED, error=error_message
                )
                logger.info(
                    "Generation marked failed",
                    threat_model_id=threat_model_id,
                    error_type=type(e).__name__,
                )
            except Exception as update_error:
                logger.error(
                    "Failed to record generation failure",
                    threat_model_id=threat_model_id,
                    error=error_message,
                    update_error=str(update_error),
                )
        finally:
            self._change_active(-1)

    def _generate(self, threat_model_id: str) -> None:
        with operation_context("load generation context", threat_model_id, PHASE_LOAD):
            threat_model = self.repository.load_threat_model(threat_model_id)
            if threat_model is None:
                raise NotFoundError(ERROR_THREAT_MODEL_NOT_FOUND)

            self.repository.update_progress(
                threat_model_id, PROGRESS_CONTEXT, MESSAGE_CONTEXT
            )
            files = self.repository.load_files(threat_model_id)
            tickets = self.repository.load_tickets(threat_model_id)
            provider = self._get_provider()

        with operation_context("assemble context", threat_model_id, PHASE_ASSEMBLE):
            logger.info(
                "Assembling generation context",
                provider=provider.name,
                file_count=len(files),
                ticket_count=len(tickets),
            )
            assembled = self.assembler.assemble(threat_model, files, tickets, provider)
            if not assembled.has_context:
                raise EmptyContextError(ERROR_EMPTY_CONTEXT)

        with operation_context("invoke model", threat_model_id, PHASE_INVOKE):
            self.repository.update_progress(
                threat_model_id, PROGRESS_MODEL_CALL, MESSAGE_MODEL_CALL
            )
            response = provider.complete(
                [Message(role="user", content=assembled.blocks)],
                system_prompt=system_prompt(),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format=RESPONSE_FORMAT_JSON,
            )
            if response.finish_reason == FINISH_REASON_LENGTH:
                logger.warning(
                    "Model response truncated at max tokens",
                    max_tokens=self.config.max_tokens,
                )

        with operation_context("normalize response", threat_model_id, PHASE_NORMALIZE):
            self.repository.update_progress(
                threat_model_id, PROGRESS_FINALIZING, MESSAGE_FINALIZING
            )
            result = normalize(response.content)

        with operation_context("persist result", threat_model_id, PHASE_PERSIST):
            if self.repository.update_result(threat_model_id, result):
                logger.info(
                    "Threat model generated",
                    threat_count=len(result.threats),
                    skipped_items=len(assembled.warnings),
                )

    def fail_stale_generations(self, max_age_seconds: Optional[int] = None) -> int:
        """
        Fail attempts left ``generating`` by a process that no longer runs them.

        Args:
            max_age_seconds: Minimum age of an attempt to be considered stale.
                Defaults to the configured value.

        Returns:
            int: Number of threat models marked failed.
        """
        if max_age_seconds is None:
            max_age_seconds = self.config.stale_generation_seconds
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age_seconds)

        failed = 0
        for threat_model in self.repository.list_generating():
            started = threat_model.generation_started_at
            if started is not None and started.tzinfo is None:
                started = started.replace(tzinfo=timezone.utc)
            if started is not None and started > cutoff:
                continue
            if self.repository.update_status(
                threat_model.id, ThreatModelStatus.FAILED, error=ERROR_STALE_GENERATION
            ):
                failed += 1
                logger.warning(
                    "Stale generation marked failed",
                    threat_model_id=threat_model.id,
                    started_at=started.isoformat() if started else None,
                )
        return failed

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
