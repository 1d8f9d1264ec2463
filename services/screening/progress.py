from sqlalchemy import func
from sqlalchemy.orm import Session

from services.screening import models


HISTORY_LIMIT = 20
TREND_WINDOW = 3
TREND_MARGIN = 5


def compute_trend(scores: list[float]) -> str:
    """Compare the latest score against the mean of the last few.

    Returns one of ``improving``, ``declining`` or ``stable``.
    """
    if len(scores) < 2:
        return "stable"
    recent = scores[-TREND_WINDOW:]
    avg = sum(recent) / len(recent)
    last = recent[-1]
    if last > avg + TREND_MARGIN:
        return "improving"
    if last < avg - TREND_MARGIN:
        return "declining"
    return "stable"


def append_history(
    *,
    db: Session,
    user_id: str,
    role: models.AssessmentRole,
    questionnaire_score: int,
    ml_score: float | None,
    fused_score: float,
    severity: models.SeverityLevel,
) -> models.AssessmentHistory:
    last_seq = (
        db.query(func.max(models.AssessmentHistory.seq))
        .filter(models.AssessmentHistory.user_id == user_id)
        .scalar()
    )
    entry = models.AssessmentHistory(
        user_id=user_id,
        seq=(last_seq or 0) + 1,
        role=role,
        questionnaire_score=questionnaire_score,
        ml_score=ml_score,
        fused_score=fused_score,
        severity=severity,
    )
    db.add(entry)
    db.flush()

    # Keep only the newest HISTORY_LIMIT entries per user.
    stale = (
        db.query(models.AssessmentHistory)
        .filter(models.AssessmentHistory.user_id == user_id)
        .order_by(models.AssessmentHistory.seq.desc())
        .offset(HISTORY_LIMIT)
        .all()
    )
    for row in stale:
        db.delete(row)
    return entry


def list_history(*, db: Session, user_id: str) -> list[models.AssessmentHistory]:
    """Oldest first."""
    return (
        db.query(models.AssessmentHistory)
        .filter(models.AssessmentHistory.user_id == user_id)
        .order_by(models.AssessmentHistory.seq.asc())
        .all()
    )


def recent_entries(history: list[models.AssessmentHistory], count: int = 5) -> list[models.AssessmentHistory]:
    """Newest first."""
    return list(reversed(history[-count:]))


def clear_history(*, db: Session, user_id: str) -> int:
    return db.query(models.AssessmentHistory).filter(models.AssessmentHistory.user_id == user_id).delete()
