"""
Centralized constants for the threat generation pipeline.

This module contains all constants used throughout the generation pipeline,
organized by logical categories for better maintainability and consistency.
"""

from enum import Enum
from typing import Dict, List, Tuple

# ============================================================================
# ENVIRONMENT VARIABLE NAMES
# ============================================================================

ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_REGION = "REGION"

# Model provider configuration
ENV_MODEL_PROVIDER = "MODEL_PROVIDER"
ENV_MODEL_ID = "MODEL_ID"
ENV_OPENAI_API_KEY = "OPENAI_API_KEY"
ENV_OPENAI_BASE_URL = "OPENAI_BASE_URL"
ENV_LLM_MAX_TOKENS = "LLM_MAX_TOKENS"
ENV_LLM_TEMPERATURE = "LLM_TEMPERATURE"
ENV_LLM_TIMEOUT_SECONDS = "LLM_TIMEOUT_SECONDS"

MODEL_PROVIDER_BEDROCK = "bedrock"
MODEL_PROVIDER_OPENAI = "openai"
SUPPORTED_MODEL_PROVIDERS: List[str] = [MODEL_PROVIDER_BEDROCK, MODEL_PROVIDER_OPENAI]

# Storage configuration
ENV_STORAGE_PROVIDER = "STORAGE_PROVIDER"
ENV_UPLOAD_DIR = "UPLOAD_DIR"
ENV_UPLOAD_BASE_URL = "UPLOAD_BASE_URL"
ENV_S3_BUCKET = "S3_BUCKET"
ENV_S3_KEY_PREFIX = "S3_KEY_PREFIX"
ENV_FILE_URL_EXPIRY_SECONDS = "FILE_URL_EXPIRY_SECONDS"

STORAGE_PROVIDER_LOCAL = "local"
STORAGE_PROVIDER_S3 = "s3"

# Persistence configuration
ENV_THREAT_MODEL_TABLE = "THREAT_MODEL_TABLE"
ENV_CONTEXT_FILE_TABLE = "CONTEXT_FILE_TABLE"
ENV_TICKET_TABLE = "TICKET_TABLE"

# Generation pool configuration
ENV_GENERATION_MAX_WORKERS = "GENERATION_MAX_WORKERS"
ENV_STALE_GENERATION_SECONDS = "STALE_GENERATION_SECONDS"


# ============================================================================
# DEFAULT VALUES
# ============================================================================

DEFAULT_REGION = "us-west-2"
DEFAULT_BEDROCK_MODEL_ID = "anthropic.claude-sonnet-4-20250514-v1:0"
DEFAULT_OPENAI_MODEL_ID = "gpt-4o"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.0
DEFAULT_TIMEOUT_SECONDS = 120
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10
DEFAULT_MAX_WORKERS = 10
DEFAULT_FILE_URL_EXPIRY_SECONDS = 3600
DEFAULT_STALE_GENERATION_SECONDS = 900
DEFAULT_UPLOAD_DIR = "./uploads"
DEFAULT_UPLOAD_BASE_URL = "http://localhost:3001/uploads"

DEFAULT_THREAT_MODEL_TABLE = "threat-models"
DEFAULT_CONTEXT_FILE_TABLE = "threat-model-files"
DEFAULT_TICKET_TABLE = "threat-model-tickets"


# ============================================================================
# VALIDATION CONSTRAINTS
# ============================================================================

MIN_MAX_TOKENS = 256
MAX_MAX_TOKENS = 64000
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 1.0
MIN_TIMEOUT_SECONDS = 5
MAX_TIMEOUT_SECONDS = 600
MIN_WORKERS = 1
MAX_WORKERS = 64


# ============================================================================
# THREAT MODEL STATUS (ENUM)
# ============================================================================


class ThreatModelStatus(Enum):
    """Lifecycle states of a threat model generation."""

    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# STRIDE CATEGORIES (ENUM)
# ============================================================================


class StrideCategory(Enum):
    """STRIDE threat modeling categories for type-safe threat classification."""

    SPOOFING = "spoofing"
    TAMPERING = "tampering"
    REPUDIATION = "repudiation"
    INFORMATION_DISCLOSURE = "information_disclosure"
    DENIAL_OF_SERVICE = "denial_of_service"
    ELEVATION_OF_PRIVILEGE = "elevation_of_privilege"


STRIDE_LABELS: Dict[StrideCategory, str] = {
    StrideCategory.SPOOFING: "Spoofing",
    StrideCategory.TAMPERING: "Tampering",
    StrideCategory.REPUDIATION: "Repudiation",
    StrideCategory.INFORMATION_DISCLOSURE: "Information Disclosure",
    StrideCategory.DENIAL_OF_SERVICE: "Denial of Service",
    StrideCategory.ELEVATION_OF_PRIVILEGE: "Elevation of Privilege",
}


# ============================================================================
# SEVERITY AND RISK SCORING
# ============================================================================


class Severity(Enum):
    """Risk severity buckets, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# Minimum risk score for each bucket, checked in order
SEVERITY_THRESHOLDS: List[Tuple[int, Severity]] = [
    (20, Severity.CRITICAL),
    (15, Severity.HIGH),
    (10, Severity.MEDIUM),
    (5, Severity.LOW),
]

MIN_RATING = 1
MAX_RATING = 5
ESCALATION_RISK_SCORE = 20

# Number of threats kept after ranking
MAX_THREATS = 5


# ============================================================================
# MITIGATIONS
# ============================================================================


class MitigationPriority(Enum):
    IMMEDIATE = "immediate"
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


class MitigationEffort(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MitigationStatus(Enum):
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    IMPLEMENTED = "implemented"
    REJECTED = "rejected"


DEFAULT_MITIGATION_PRIORITY = MitigationPriority.SHORT_TERM
DEFAULT_MITIGATION_EFFORT = MitigationEffort.MEDIUM


# ============================================================================
# CONTEXT FILES AND CONTENT
# ============================================================================


class FileType(Enum):
    """Semantic tag attached to an uploaded context file."""

    PRD = "prd"
    DIAGRAM = "diagram"
    SCREENSHOT = "screenshot"
    OTHER = "other"


class ContentKind(Enum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"


IMAGE_MIME_TYPES: List[str] = ["image/jpeg", "image/png", "image/gif", "image/webp"]
PDF_MIME_TYPE = "application/pdf"

TEXT_MIME_TYPES: List[str] = [
    "application/json",
    "application/xml",
    "application/x-yaml",
    "application/yaml",
]
TEXT_FILE_EXTENSIONS: Tuple[str, ...] = (
    ".md",
    ".txt",
    ".json",
    ".yaml",
    ".yml",
    ".csv",
    ".xml",
)


# ============================================================================
# LLM REQUEST SETTINGS
# ============================================================================

RESPONSE_FORMAT_TEXT = "text"
RESPONSE_FORMAT_JSON = "json"

FINISH_REASON_STOP = "stop"
FINISH_REASON_LENGTH = "length"
FINISH_REASON_ERROR = "error"

# Provider-specific stop reasons mapped onto the normalized set
FINISH_REASON_MAP: Dict[str, str] = {
    "stop": FINISH_REASON_STOP,
    "end_turn": FINISH_REASON_STOP,
    "stop_sequence": FINISH_REASON_STOP,
    "length": FINISH_REASON_LENGTH,
    "max_tokens": FINISH_REASON_LENGTH,
}


# ============================================================================
# GENERATION PROGRESS
# ============================================================================

PROGRESS_STARTED = 10
PROGRESS_CONTEXT = 20
PROGRESS_MODEL_CALL = 40
PROGRESS_FINALIZING = 80
PROGRESS_COMPLETE = 100

MESSAGE_STARTED = "Starting threat analysis..."
MESSAGE_CONTEXT = "Analyzing system context..."
MESSAGE_MODEL_CALL = "Generating threat analysis..."
MESSAGE_FINALIZING = "Finalizing threat model..."
MESSAGE_COMPLETE = "Threat model generated successfully"

# Phases of one generation attempt, as logged by operation_context
PHASE_LOAD = "load_context"
PHASE_ASSEMBLE = "assemble_context"
PHASE_INVOKE = "invoke_model"
PHASE_NORMALIZE = "normalize_response"
PHASE_PERSIST = "persist_result"


# ============================================================================
# ERROR MESSAGES
# ============================================================================

ERROR_THREAT_MODEL_NOT_FOUND = "Threat model not found"
ERROR_GENERATION_IN_PROGRESS = "Threat model generation already in progress"
ERROR_EMPTY_CONTEXT = "No usable context available for threat generation"
ERROR_UNPARSEABLE_RESPONSE = "Failed to parse AI response as JSON"
ERROR_STALE_GENERATION = "Generation interrupted before completion"
ERROR_PROVIDER_TIMEOUT = "request timed out"
ERROR_DYNAMODB_OPERATION_FAILED = "DynamoDB operation failed"
ERROR_S3_OPERATION_FAILED = "S3 operation failed"
ERROR_MODEL_INIT_FAILED = "Model initialization failed"
ERROR_VALIDATION_FAILED = "Request validation failed"


# ============================================================================
# AWS SERVICE NAMES
# ============================================================================

AWS_SERVICE_BEDROCK_RUNTIME = "bedrock-runtime"
AWS_SERVICE_DYNAMODB = "dynamodb"
AWS_SERVICE_S3 = "s3"
