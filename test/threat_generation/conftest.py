"""
Shared pytest fixtures for backend/threat_generation tests.

This module provides common fixtures for testing the generation pipeline:
- A scripted fake LLM provider with configurable capabilities
- An in-memory repository with the same status-guard semantics as DynamoDB
- A synchronous executor so background work runs inline
- Mock storage and sample threat models, files and tickets
"""

import json
import sys
from concurrent.futures import Executor, Future
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from unittest.mock import Mock

import pytest

# Add backend/threat_generation to path for imports
sys.path.insert(
    0, str(Path(__file__).parent.parent.parent / "backend" / "threat_generation")
)

from config import GenerationConfig  # noqa: E402
from constants import (  # noqa: E402
    ERROR_GENERATION_IN_PROGRESS,
    ERROR_THREAT_MODEL_NOT_FOUND,
    MESSAGE_COMPLETE,
    MESSAGE_STARTED,
    PROGRESS_COMPLETE,
    PROGRESS_STARTED,
    ContentKind,
    FileType,
    ThreatModelStatus,
)
from content import CompletionResponse, Usage  # noqa: E402
from exceptions import ConflictError, NotFoundError  # noqa: E402
from model_service import LLMProvider  # noqa: E402
from state import (  # noqa: E402
    ContextFile,
    QuestionAnswer,
    ThreatModel,
    TicketComment,
    TicketPerson,
    TicketRecord,
)
from storage import StorageResolver  # noqa: E402


# ============================================================================
# Fakes
# ============================================================================


class FakeProvider(LLMProvider):
    """Provider returning scripted responses and recording each call."""

    name = "fake"

    def __init__(self, response_text="", error=None, content_types=None):
        self.response_text = response_text
        self.error = error
        self.calls = []
        if content_types is not None:
            self.content_types = frozenset(content_types)
        else:
            self.content_types = frozenset(
                {ContentKind.TEXT, ContentKind.IMAGE, ContentKind.DOCUMENT}
            )

    def complete(
        self,
        messages,
        system_prompt=None,
        max_tokens=None,
        temperature=None,
        response_format="text",
    ):
        self.calls.append(
            {
                "messages": messages,
                "system_prompt": system_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "response_format": response_format,
            }
        )
        if self.error is not None:
            raise self.error
        return CompletionResponse(
            content=self.response_text,
            model="fake-model",
            usage=Usage(input_tokens=100, output_tokens=50, total_tokens=150),
        )


class InMemoryRepository:
    """Dict-backed stand-in for ThreatModelRepository."""

    def __init__(self, models=None, files=None, tickets=None):
        self.models = {model.id: model for model in (models or [])}
        self.files = files or {}
        self.tickets = tickets or {}
        self.progress_history = []
        self._lock = Lock()

    def load_threat_model(self, threat_model_id):
        return self.models.get(threat_model_id)

    def load_files(self, threat_model_id):
        return list(self.files.get(threat_model_id, []))

    def load_tickets(self, threat_model_id):
        return list(self.tickets.get(threat_model_id, []))

    def list_generating(self):
        return [
            model
            for model in self.models.values()
            if model.status == ThreatModelStatus.GENERATING
        ]

    def mark_generating(self, threat_model_id):
        with self._lock:
            model = self.models.get(threat_model_id)
            if model is None:
                raise NotFoundError(ERROR_THREAT_MODEL_NOT_FOUND)
            if model.status == ThreatModelStatus.GENERATING:
                raise ConflictError(ERROR_GENERATION_IN_PROGRESS)
            self.models[threat_model_id] = model.model_copy(
                update={
                    "status": ThreatModelStatus.GENERATING,
                    "generation_started_at": datetime.now(timezone.utc),
                    "generation_error": None,
                    "generation_completed_at": None,
                    "generation_progress": PROGRESS_STARTED,
                    "generation_message": MESSAGE_STARTED,
                }
            )
            self.progress_history.append(PROGRESS_STARTED)

    def _update(self, threat_model_id, expected_status, **changes):
        with self._lock:
            model = self.models[threat_model_id]
            if expected_status is not None and model.status != expected_status:
                return False
            self.models[threat_model_id] = model.model_copy(update=changes)
            return True

    def update_progress(self, threat_model_id, progress, message):
        updated = self._update(
            threat_model_id,
            ThreatModelStatus.GENERATING,
            generation_progress=progress,
            generation_message=message,
        )
        if updated:
            self.progress_history.append(progress)
        return updated

    def update_status(
        self,
        threat_model_id,
        status,
        error=None,
        expected_status=ThreatModelStatus.GENERATING,
    ):
        changes = {"status": status}
        if error is not None:
            changes["generation_error"] = error
        return self._update(threat_model_id, expected_status, **changes)

    def update_result(self, threat_model_id, result):
        updated = self._update(
            threat_model_id,
            ThreatModelStatus.GENERATING,
            status=ThreatModelStatus.COMPLETED,
            threats=list(result.threats),
            summary=result.summary,
            recommendations=list(result.recommendations),
            generation_completed_at=datetime.now(timezone.utc),
            generation_progress=PROGRESS_COMPLETE,
            generation_message=MESSAGE_COMPLETE,
        )
        if updated:
            self.progress_history.append(PROGRESS_COMPLETE)
        return updated


class SynchronousExecutor(Executor):
    """Runs submitted work inline; useful to observe terminal states."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args, **kwargs):
        self.submitted.append((fn, args, kwargs))
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until run_all() is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        self.pending.append((fn, args, kwargs))
        return Future()

    def run_all(self):
        while self.pending:
            fn, args, kwargs = self.pending.pop(0)
            fn(*args, **kwargs)


# ============================================================================
# Response Fixtures
# ============================================================================


def make_threat_payload(title, likelihood, impact, category="tampering", **extra):
    payload = {
        "title": title,
        "description": f"{title} description",
        "category": category,
        "likelihood": likelihood,
        "impact": impact,
        "affectedComponents": ["api"],
        "attackVector": "network",
        "mitigations": [{"description": f"Mitigate {title}"}],
    }
    payload.update(extra)
    return payload


@pytest.fixture
def valid_response_text():
    """Model output with two threats, lower score first."""
    return json.dumps(
        {
            "threats": [
                make_threat_payload("Log tampering", 2, 3),
                make_threat_payload(
                    "Token replay", 5, 4, category="Spoofing", riskScore=1
                ),
            ],
            "summary": "Two notable threats.",
            "recommendations": ["Rotate tokens"],
        }
    )


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def generation_config():
    return GenerationConfig()


@pytest.fixture
def fake_provider(valid_response_text):
    return FakeProvider(response_text=valid_response_text)


@pytest.fixture
def mock_storage():
    """Mock storage resolving keys to predictable URLs."""
    storage = Mock(spec=StorageResolver)
    storage.name = "mock"
    storage.resolve_url.side_effect = (
        lambda key, expiry_seconds=3600: f"https://files.example.com/{key}"
    )
    storage.read_bytes.return_value = b"# Requirements\nUsers log in with SSO."
    return storage


# ============================================================================
# Test Data Fixtures
# ============================================================================


@pytest.fixture
def sample_threat_model():
    """Draft threat model with a system description only."""
    return ThreatModel(
        id="tm-1",
        title="",
        system_description="A REST API behind an ALB storing PII in RDS.",
    )


@pytest.fixture
def detailed_threat_model():
    return ThreatModel(
        id="tm-2",
        title="Payments Service",
        description="Handles card payments.",
        system_description="Go service calling a PSP over HTTPS.",
        questions_answers=[
            QuestionAnswer(
                question_id="q1",
                question="Who are the users?",
                answer="Merchants and admins",
            )
        ],
    )


@pytest.fixture
def sample_files():
    return [
        ContextFile(
            id="f1",
            original_name="architecture.png",
            mime_type="image/png",
            storage_key="tm-2/architecture.png",
            file_type=FileType.DIAGRAM,
        ),
        ContextFile(
            id="f2",
            original_name="design.pdf",
            mime_type="application/pdf",
            storage_key="tm-2/design.pdf",
            file_type=FileType.PRD,
        ),
        ContextFile(
            id="f3",
            original_name="requirements.md",
            mime_type="application/octet-stream",
            storage_key="tm-2/requirements.md",
            file_type=FileType.PRD,
        ),
    ]


@pytest.fixture
def sample_ticket():
    return TicketRecord(
        id="t1",
        issue_key="PAY-42",
        project_key="PAY",
        title="Add refunds endpoint",
        description="Expose POST /refunds",
        issue_type="Story",
        status="In Progress",
        priority="High",
        labels=["payments", "api"],
        reporter=TicketPerson(display_name="Sam Reporter"),
        assignee=TicketPerson(display_name="Alex Assignee", email="alex@example.com"),
        comments=[
            TicketComment(
                id="c1", author="Sam", body="First comment", created="2024-01-01T10:00:00Z"
            ),
            TicketComment(
                id="c2", author="Alex", body="Latest comment", created="2024-01-03T10:00:00Z"
            ),
        ],
    )


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def make_repository():
    """Factory for InMemoryRepository instances."""
    return InMemoryRepository


@pytest.fixture
def sync_executor():
    return SynchronousExecutor()


@pytest.fixture
def deferred_executor():
    return DeferredExecutor()


@pytest.fixture
def make_threat():
    """Factory for threat payload dicts as a model would return them."""
    return make_threat_payload
