"""Response normalization: model output text to a validated, ranked GenerationResult."""

import json
import uuid
from typing import Any, Dict, List, Optional

from constants import (
    DEFAULT_MITIGATION_EFFORT,
    DEFAULT_MITIGATION_PRIORITY,
    ERROR_UNPARSEABLE_RESPONSE,
    MAX_RATING,
    MAX_THREATS,
    MIN_RATING,
    MitigationEffort,
    MitigationPriority,
    MitigationStatus,
    StrideCategory,
)
from exceptions import ParseError
from monitoring import logger
from pydantic import ValidationError as PydanticValidationError
from scoring import calculate_risk_score, severity_for_score
from state import GenerationResult, Mitigation, Threat


def extract_json(raw_text: str) -> Any:
    """
    Decode the model output as JSON.

    The whole text is tried first. Failing that, the first balanced {...}
    span is decoded; braces inside string literals are ignored.

    Raises:
        ParseError: If no decodable JSON object is found.
    """
    try:
        return json.loads(raw_text)
    except (TypeError, ValueError):
        pass

    span = _first_object_span(raw_text or "")
    if span is None:
        raise ParseError(ERROR_UNPARSEABLE_RESPONSE)
    try:
        return json.loads(span)
    except ValueError as e:
        raise ParseError(f"{ERROR_UNPARSEABLE_RESPONSE}: {e}") from e


def _first_object_span(text: str) -> Optional[str]:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _field(data: Dict[str, Any], snake: str, camel: Optional[str] = None) -> Any:
    if snake in data:
        return data[snake]
    if camel and camel in data:
        return data[camel]
    return None


def _required_text(data: Dict[str, Any], key: str, position: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"{position}: '{key}' must be a non-empty string")
    return value


def _rating(value: Any, key: str, position: str) -> int:
    if isinstance(value, bool):
        raise ParseError(f"{position}: '{key}' must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ParseError(f"{position}: '{key}' must be an integer, got {value!r}")
    if not MIN_RATING <= value <= MAX_RATING:
        raise ParseError(
            f"{position}: '{key}' must be between {MIN_RATING} and {MAX_RATING}, got {value}"
        )
    return value


def normalize_category(value: Any) -> StrideCategory:
    """Map "Information Disclosure", "information-disclosure" etc. to the enum."""
    if not isinstance(value, str):
        raise ValueError(f"category must be a string, got {value!r}")
    key = value.strip().lower().replace("-", " ").replace("_", " ")
    key = "_".join(key.split())
    return StrideCategory(key)


def _normalize_mitigation(data: Any, position: str) -> Mitigation:
    if not isinstance(data, dict):
        raise ParseError(f"{position}: mitigation must be an object")

    description = _required_text(data, "description", position)
    try:
        return Mitigation(
            id=str(uuid.uuid4()),
            description=description,
            priority=MitigationPriority(data.get("priority") or DEFAULT_MITIGATION_PRIORITY.value),
            effort=MitigationEffort(data.get("effort") or DEFAULT_MITIGATION_EFFORT.value),
            status=MitigationStatus.PROPOSED,
        )
    except ValueError as e:
        raise ParseError(f"{position}: invalid mitigation: {e}") from e


def _normalize_threat(data: Any, index: int) -> Threat:
    position = f"threats[{index}]"
    if not isinstance(data, dict):
        raise ParseError(f"{position}: threat must be an object")

    title = _required_text(data, "title", position)
    description = _required_text(data, "description", position)
    likelihood = _rating(data.get("likelihood"), "likelihood", position)
    impact = _rating(data.get("impact"), "impact", position)

    try:
        category = normalize_category(data.get("category"))
    except ValueError as e:
        raise ParseError(f"{position}: unknown STRIDE category {data.get('category')!r}") from e

    mitigations_data = data.get("mitigations") or []
    if not isinstance(mitigations_data, list):
        raise ParseError(f"{position}: 'mitigations' must be a list")

    components = _field(data, "affected_components", "affectedComponents") or []
    if not isinstance(components, list):
        raise ParseError(f"{position}: 'affectedComponents' must be a list")

    risk_score = calculate_risk_score(likelihood, impact)
    try:
        return Threat(
            id=str(uuid.uuid4()),
            title=title,
            description=description,
            category=category,
            severity=severity_for_score(risk_score),
            likelihood=likelihood,
            impact=impact,
            risk_score=risk_score,
            affected_components=[str(component) for component in components],
            attack_vector=_field(data, "attack_vector", "attackVector"),
            mitigations=[
                _normalize_mitigation(m, f"{position}.mitigations[{i}]")
                for i, m in enumerate(mitigations_data)
            ],
        )
    except PydanticValidationError as e:
        raise ParseError(f"{position}: {e}") from e


def normalize(raw_text: str) -> GenerationResult:
    """
    Validate and rank the model output.

    Severity and risk score are always recomputed from likelihood and
    impact; values supplied by the model are ignored. Every threat and
    mitigation gets a fresh id. Threats are stably sorted by risk score
    descending and truncated to MAX_THREATS.

    Args:
        raw_text: Raw completion text.

    Returns:
        GenerationResult: Normalized threats, summary and recommendations.

    Raises:
        ParseError: On undecodable JSON or any schema violation.
    """
    data = extract_json(raw_text)
    if not isinstance(data, dict):
        raise ParseError("Model response must be a JSON object")

    threats_data = data.get("threats")
    if not isinstance(threats_data, list):
        raise ParseError("Model response must contain a 'threats' list")

    threats: List[Threat] = [
        _normalize_threat(item, index) for index, item in enumerate(threats_data)
    ]
    ranked = sorted(threats, key=lambda threat: threat.risk_score, reverse=True)

    summary = data.get("summary") or ""
    if not isinstance(summary, str):
        raise ParseError("'summary' must be a string")

    recommendations = data.get("recommendations") or []
    if not isinstance(recommendations, list) or not all(
        isinstance(item, str) for item in recommendations
    ):
        raise ParseError("'recommendations' must be a list of strings")

    if len(ranked) > MAX_THREATS:
        logger.info(
            "Truncating ranked threats",
            returned=len(ranked),
            kept=MAX_THREATS,
        )

    return GenerationResult(
        threats=ranked[:MAX_THREATS],
        summary=summary,
        recommendations=recommendations,
    )
