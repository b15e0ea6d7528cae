"""Module containing the data models for the threat generation pipeline."""

from datetime import datetime
from typing import Annotated, List, Optional

from constants import (
    MAX_RATING,
    MIN_RATING,
    FileType,
    MitigationEffort,
    MitigationPriority,
    MitigationStatus,
    Severity,
    StrideCategory,
    ThreatModelStatus,
)
from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuestionAnswer(BaseModel):
    """Questionnaire answer attached to a threat model."""

    question_id: str = ""
    question: str
    answer: str
    category: Optional[str] = None


class Mitigation(BaseModel):
    """Model representing a countermeasure for a threat."""

    id: str
    description: Annotated[str, Field(min_length=1)]
    priority: MitigationPriority = MitigationPriority.SHORT_TERM
    effort: MitigationEffort = MitigationEffort.MEDIUM
    status: MitigationStatus = MitigationStatus.PROPOSED


class Threat(BaseModel):
    """Model representing an identified security threat using the STRIDE methodology."""

    id: str
    title: Annotated[str, Field(min_length=1)]
    description: Annotated[str, Field(min_length=1)]
    category: StrideCategory
    severity: Severity
    likelihood: Annotated[int, Field(ge=MIN_RATING, le=MAX_RATING)]
    impact: Annotated[int, Field(ge=MIN_RATING, le=MAX_RATING)]
    risk_score: Annotated[
        int, Field(ge=MIN_RATING * MIN_RATING, le=MAX_RATING * MAX_RATING)
    ]
    affected_components: List[str] = Field(default_factory=list)
    attack_vector: Optional[str] = None
    mitigations: List[Mitigation] = Field(default_factory=list)
    severity_overridden: bool = False

    @model_validator(mode="after")
    def _check_risk_score(self) -> "Threat":
        if self.risk_score != self.likelihood * self.impact:
            raise ValueError(
                f"risk_score {self.risk_score} does not equal "
                f"likelihood * impact ({self.likelihood * self.impact})"
            )
        return self


class ContextFile(BaseModel):
    """Reference to an uploaded artifact. Never mutated by the pipeline."""

    id: str
    original_name: str
    mime_type: str
    storage_key: str
    file_type: FileType = FileType.OTHER
    size: Optional[int] = None


class TicketPerson(BaseModel):
    display_name: str
    email: Optional[str] = None


class TicketComment(BaseModel):
    id: str = ""
    author: str
    body: str
    created: str = ""


class TicketAttachment(BaseModel):
    id: str = ""
    filename: str
    mime_type: str
    size: int = 0
    url: str = ""


class LinkedIssue(BaseModel):
    issue_key: str
    title: str
    link_type: str
    direction: str = "outward"


class RemoteLink(BaseModel):
    title: str
    url: str


class TicketRecord(BaseModel):
    """Immutable snapshot of an imported issue-tracker ticket."""

    model_config = ConfigDict(frozen=True)

    id: str
    issue_key: str
    project_key: str = ""
    title: str
    description: Optional[str] = None
    issue_type: str = ""
    status: str = ""
    priority: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    reporter: Optional[TicketPerson] = None
    assignee: Optional[TicketPerson] = None
    comments: List[TicketComment] = Field(default_factory=list)
    attachments: List[TicketAttachment] = Field(default_factory=list)
    linked_issues: List[LinkedIssue] = Field(default_factory=list)
    remote_links: List[RemoteLink] = Field(default_factory=list)


class ThreatModel(BaseModel):
    """The unit of work for a generation attempt."""

    id: str
    title: str
    description: Optional[str] = None
    system_description: Optional[str] = None
    questions_answers: List[QuestionAnswer] = Field(default_factory=list)
    status: ThreatModelStatus = ThreatModelStatus.DRAFT
    threats: List[Threat] = Field(default_factory=list)
    summary: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
    generation_started_at: Optional[datetime] = None
    generation_completed_at: Optional[datetime] = None
    generation_error: Optional[str] = None
    generation_progress: int = 0
    generation_message: Optional[str] = None


class GenerationResult(BaseModel):
    """Normalized outcome of a generation attempt."""

    threats: List[Threat] = Field(default_factory=list)
    summary: str = ""
    recommendations: List[str] = Field(default_factory=list)


class GenerationStatus(BaseModel):
    """Pollable view of a threat model's generation lifecycle."""

    status: ThreatModelStatus
    progress: Annotated[int, Field(ge=0, le=100)] = 0
    message: Optional[str] = None
    error: Optional[str] = None
