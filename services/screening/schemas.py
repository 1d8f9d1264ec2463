from pydantic import BaseModel, Field

from services.screening.models import AnswerValue, AssessmentRole


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=8, max_length=72)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ------------------------------
# Question banks
# ------------------------------


class QuestionResponse(BaseModel):
    id: str
    text: str
    category: str
    weight: float


class QuestionBankResponse(BaseModel):
    role: str
    questions: list[QuestionResponse]


# ------------------------------
# Scoring
# ------------------------------


class VideoPredictionPayload(BaseModel):
    prediction_score: float = Field(allow_inf_nan=False)
    confidence: float | None = Field(default=0.7, allow_inf_nan=False)
    features_detected: dict | None = None


class ScoreRequest(BaseModel):
    role: AssessmentRole
    answers: dict[str, AnswerValue]
    # None derives the flag from the family-history answer.
    has_family_history: bool | None = None
    video_prediction: VideoPredictionPayload | None = None


class SeverityResponse(BaseModel):
    level: str
    label: str
    recommendation: str


class ContributorResponse(BaseModel):
    question: str
    contribution: float
    action: str


class ScheduleResponse(BaseModel):
    level: str
    task_count: int
    task_duration: str
    description: str


class ScoringResultResponse(BaseModel):
    normalized_score: int
    raw_total: float
    max_possible: float
    severity: SeverityResponse
    severity_color: str
    schedule: ScheduleResponse
    top_contributors: list[ContributorResponse]
    video_prediction: VideoPredictionPayload | None = None
    fused_score: float | None = None
    skipped_question_ids: list[str] = []


# ------------------------------
# Fused score proxy
# ------------------------------


class FusedScoreRequest(BaseModel):
    # Optional so a missing score is answered with 400 rather than a validation error.
    questionnaire_score: float | None = Field(default=None, allow_inf_nan=False)
    model_score: float | None = Field(default=None, allow_inf_nan=False)
    model_confidence: float | None = Field(default=0.7, allow_inf_nan=False)


class FusedScoreResponse(BaseModel):
    questionnaire_score: float
    model_score: float | None
    fused_score: float
    severity: SeverityResponse
    formula: str


class PatientFusedScoreResponse(BaseModel):
    patient_id: str
    questionnaire_score: float | None
    model_score: float | None
    fused_score: float | None
    severity: SeverityResponse


# ------------------------------
# Assessments
# ------------------------------


class AssessmentSubmitRequest(BaseModel):
    role: AssessmentRole
    patient_id: str | None = Field(default=None, min_length=3, max_length=64)
    answers: dict[str, AnswerValue]
    # None derives the flag from the family-history answer.
    has_family_history: bool | None = None
    video_prediction: VideoPredictionPayload | None = None
    child_data: dict = {}


class AssessmentResponse(BaseModel):
    id: str
    user_id: str
    role: str
    patient_id: str
    child_data: dict
    answers: dict[str, str] | None
    questionnaire_score: int | None
    model_score: float | None
    fused_score: float | None
    severity: str | None
    assessment_complete: bool
    created_at: str
    updated_at: str
    result: ScoringResultResponse | None = None


class HistoryEntryResponse(BaseModel):
    id: str
    role: str
    questionnaire_score: int
    ml_score: float | None
    fused_score: float
    severity: str
    created_at: str


class HistoryResponse(BaseModel):
    total: int
    trend: str
    recent: list[HistoryEntryResponse]


# ------------------------------
# Audit
# ------------------------------


class AuditLogResponse(BaseModel):
    id: str
    actor_user_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    ip: str | None
    device_id: str | None
    ts: str
    prev_hash: str | None
    entry_hash: str


class AuditVerifyResponse(BaseModel):
    ok: bool
