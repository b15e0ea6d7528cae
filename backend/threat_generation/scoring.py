"""Risk scoring and severity helpers shared by the normalizer and edit paths."""

from typing import Iterable, Optional

from constants import (
    ESCALATION_RISK_SCORE,
    MAX_RATING,
    MIN_RATING,
    SEVERITY_THRESHOLDS,
    Severity,
)
from state import Threat

SEVERITY_ORDER = list(Severity)


def calculate_risk_score(likelihood: int, impact: int) -> int:
    """Return likelihood * impact after checking both are on the 1-5 scale."""
    for name, value in (("likelihood", likelihood), ("impact", impact)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        if not MIN_RATING <= value <= MAX_RATING:
            raise ValueError(
                f"{name} must be between {MIN_RATING} and {MAX_RATING}, got {value}"
            )
    return likelihood * impact


def severity_for_score(risk_score: int) -> Severity:
    for threshold, severity in SEVERITY_THRESHOLDS:
        if risk_score >= threshold:
            return severity
    return Severity.INFO


def highest_severity(threats: Iterable[Threat]) -> Optional[Severity]:
    """Most severe bucket present in the list, or None for an empty list."""
    present = {threat.severity for threat in threats}
    for severity in SEVERITY_ORDER:
        if severity in present:
            return severity
    return None


def should_escalate(threat: Threat) -> bool:
    return (
        threat.severity == Severity.CRITICAL
        or threat.risk_score >= ESCALATION_RISK_SCORE
    )


def apply_threat_update(
    threat: Threat,
    severity: Optional[Severity] = None,
    likelihood: Optional[int] = None,
    impact: Optional[int] = None,
) -> Threat:
    """
    Apply a post-generation edit to a threat.

    The risk score is re-derived whenever likelihood or impact changes.
    Severity is never re-derived; it changes only when passed explicitly,
    and severity_overridden records whether it diverges from the bucket the
    current risk score maps to.

    Args:
        threat: Threat to edit. It is not modified.
        severity: New severity, if the user set one.
        likelihood: New likelihood (1-5).
        impact: New impact (1-5).

    Returns:
        Threat: Edited copy.
    """
    new_likelihood = threat.likelihood if likelihood is None else likelihood
    new_impact = threat.impact if impact is None else impact
    new_severity = threat.severity if severity is None else Severity(severity)
    risk_score = calculate_risk_score(new_likelihood, new_impact)

    data = threat.model_dump()
    data.update(
        likelihood=new_likelihood,
        impact=new_impact,
        risk_score=risk_score,
        severity=new_severity,
        severity_overridden=new_severity != severity_for_score(risk_score),
    )
    return Threat.model_validate(data)
