"""Questionnaire / ML score fusion and severity classification.

``fuse`` is the only implementation of the fusion formula. The scorer, the
``/fused-score`` endpoints and the persistence path all call it so the score a
user sees immediately and the one stored later cannot drift apart.
"""
import math
from dataclasses import dataclass

from services.screening import models
from services.screening.errors import InvalidInput


QUESTIONNAIRE_WEIGHT = 0.6
MODEL_WEIGHT = 0.4
DEFAULT_MODEL_CONFIDENCE = 0.7

FUSION_FORMULA = "fused_score = (questionnaire_score * 0.6 + model_score * 0.4 * confidence) / total_weight"


@dataclass(frozen=True)
class Severity:
    level: models.SeverityLevel
    label: str
    recommendation: str


@dataclass(frozen=True)
class FusedScoreResult:
    questionnaire_score: float
    model_score: float | None
    fused_score: float
    severity: Severity


# Upper bounds are exclusive; the last tier closes at 100.
SEVERITY_TIERS: list[tuple[float, Severity]] = [
    (
        25,
        Severity(
            level=models.SeverityLevel.low,
            label="Very Low (Normal)",
            recommendation="Person is within normal range. Continue monitoring development.",
        ),
    ),
    (
        40,
        Severity(
            level=models.SeverityLevel.mild,
            label="Low - Assessment Requested",
            recommendation="Low indicators detected. Clinical assessment is recommended for clarification.",
        ),
    ),
    (
        60,
        Severity(
            level=models.SeverityLevel.moderate,
            label="Moderate - Assessment Required",
            recommendation="Moderate indicators present. Clinical assessment is required.",
        ),
    ),
    (
        75,
        Severity(
            level=models.SeverityLevel.high,
            label="High - Assessment Mandatory",
            recommendation="High indicators detected. Clinical assessment is mandatory.",
        ),
    ),
    (
        100,
        Severity(
            level=models.SeverityLevel.very_high,
            label="Very High - Regular Checkup Needed",
            recommendation="Very high indicators present. Regular clinical checkups are essential.",
        ),
    ),
]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _require_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise InvalidInput(f"{name} must be a finite number, got {value}")


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round .5 away from zero for positive values instead of to the nearest even digit."""
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def fuse(
    questionnaire_score: float,
    model_score: float | None,
    model_confidence: float | None = DEFAULT_MODEL_CONFIDENCE,
) -> float:
    """Blend the questionnaire score with an external model score.

    The model's 40% share is attenuated by its confidence, so below full
    confidence the questionnaire carries more than 60% of the result.
    Out-of-range scores and confidences are clamped. NaN and infinities
    cannot be clamped meaningfully and raise ``InvalidInput``.
    """
    _require_finite("questionnaire_score", questionnaire_score)
    if model_score is None:
        return questionnaire_score

    if model_confidence is None:
        model_confidence = DEFAULT_MODEL_CONFIDENCE
    _require_finite("model_score", model_score)
    _require_finite("model_confidence", model_confidence)

    q = clamp(questionnaire_score, 0, 100)
    m = clamp(model_score, 0, 100)
    confidence = clamp(model_confidence, 0, 1)

    ml_weight = MODEL_WEIGHT * confidence
    total_weight = QUESTIONNAIRE_WEIGHT + ml_weight

    fused = (q * QUESTIONNAIRE_WEIGHT + m * ml_weight) / total_weight
    return round_half_up(fused, 2)


def classify(score: float) -> Severity:
    """Map a 0-100 score onto one of five contiguous severity tiers."""
    if not math.isfinite(score) or score < 0 or score > 100:
        raise InvalidInput(f"Score must be within [0, 100], got {score}")

    for upper, severity in SEVERITY_TIERS[:-1]:
        if score < upper:
            return severity
    return SEVERITY_TIERS[-1][1]


def get_fused_score_result(
    questionnaire_score: float,
    model_score: float | None,
    model_confidence: float | None = DEFAULT_MODEL_CONFIDENCE,
) -> FusedScoreResult:
    fused_score = fuse(questionnaire_score, model_score, model_confidence)
    return FusedScoreResult(
        questionnaire_score=questionnaire_score,
        model_score=model_score,
        fused_score=fused_score,
        severity=classify(fused_score),
    )
