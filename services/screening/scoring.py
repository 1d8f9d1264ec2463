import logging
from dataclasses import dataclass, field
from typing import Any

from services.screening import models
from services.screening.errors import InvalidInput
from services.screening.fusion import DEFAULT_MODEL_CONFIDENCE, Severity, classify, fuse, round_half_up

logger = logging.getLogger(__name__)


ANSWER_VALUES: dict[models.AnswerValue, int] = {
    models.AnswerValue.never: 0,
    models.AnswerValue.rarely: 1,
    models.AnswerValue.sometimes: 2,
    models.AnswerValue.often: 3,
    models.AnswerValue.always: 4,
}

MAX_ANSWER_VALUE = 4

# Added to both accumulators when the caller reports a family history,
# on top of whatever the family-history question itself contributed.
FAMILY_HISTORY_BONUS = 6


@dataclass(frozen=True)
class QuestionWeight:
    id: str
    weight: float
    category: models.QuestionCategory


@dataclass(frozen=True)
class Answer:
    question_id: str
    value: models.AnswerValue


@dataclass(frozen=True)
class VideoPrediction:
    prediction_score: float
    confidence: float | None = DEFAULT_MODEL_CONFIDENCE
    features_detected: Any = None


@dataclass(frozen=True)
class Contributor:
    question: str
    contribution: float
    action: str


@dataclass
class ScoringResult:
    normalized_score: int
    severity: Severity
    raw_total: float
    max_possible: float
    top_contributors: list[Contributor]
    video_prediction: VideoPrediction | None = None
    fused_score: float | None = None
    skipped_question_ids: list[str] = field(default_factory=list)

    @property
    def final_score(self) -> float:
        return self.fused_score if self.fused_score is not None else self.normalized_score


def answer_value(value: models.AnswerValue) -> int:
    return ANSWER_VALUES[models.AnswerValue(value)]


def get_action_for_contributor(value: int) -> str:
    if value >= 3:
        return "Practice in structured, supportive settings"
    if value == 2:
        return "Monitor and provide gentle encouragement"
    return "Continue current support approach"


def calculate_score(
    answers: list[Answer],
    question_weights: list[QuestionWeight],
    has_family_history: bool = False,
    video_prediction: VideoPrediction | None = None,
) -> ScoringResult:
    """Weighted questionnaire score, optionally fused with a video prediction.

    Answers whose question has no weight are skipped rather than rejected so
    partial or mixed answer sets still score.

    Raises:
        InvalidInput: nothing was scored, so there is no maximum to normalize by.
    """
    weights = {qw.id: qw for qw in question_weights}

    raw_total = 0.0
    max_possible = 0.0
    contributions: list[tuple[str, float, int]] = []
    skipped: list[str] = []

    for answer in answers:
        qw = weights.get(answer.question_id)
        if qw is None:
            skipped.append(answer.question_id)
            continue

        value = answer_value(answer.value)
        contribution = value * qw.weight

        raw_total += contribution
        max_possible += MAX_ANSWER_VALUE * qw.weight
        contributions.append((answer.question_id, contribution, value))

    if skipped:
        logger.debug(f"Skipped {len(skipped)} answers without a question weight: {skipped}")

    if has_family_history:
        raw_total += FAMILY_HISTORY_BONUS
        max_possible += FAMILY_HISTORY_BONUS

    if max_possible == 0:
        raise InvalidInput("Cannot score an empty answer set")

    normalized_score = int(round_half_up(raw_total / max_possible * 100))

    fused_score = None
    if video_prediction is not None and video_prediction.prediction_score is not None:
        fused_score = fuse(normalized_score, video_prediction.prediction_score, video_prediction.confidence)

    severity = classify(fused_score if fused_score is not None else normalized_score)

    # sorted() is stable, so equal contributions keep their answer order.
    ranked = sorted(contributions, key=lambda c: c[1], reverse=True)[:3]
    top_contributors = [
        Contributor(question=question_id, contribution=contribution, action=get_action_for_contributor(value))
        for question_id, contribution, value in ranked
    ]

    return ScoringResult(
        normalized_score=normalized_score,
        severity=severity,
        raw_total=raw_total,
        max_possible=max_possible,
        top_contributors=top_contributors,
        video_prediction=video_prediction,
        fused_score=fused_score,
        skipped_question_ids=skipped,
    )


def answers_from_mapping(answers: dict[str, str]) -> list[Answer]:
    """Build answers from a ``{question_id: value}`` mapping, preserving key order."""
    return [Answer(question_id=q_id, value=models.AnswerValue(value)) for q_id, value in answers.items()]
