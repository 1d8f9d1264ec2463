import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class AssessmentRole(str, enum.Enum):
    individual = "individual"
    parent = "parent"
    clinician = "clinician"


class AnswerValue(str, enum.Enum):
    never = "never"
    rarely = "rarely"
    sometimes = "sometimes"
    often = "often"
    always = "always"


class QuestionCategory(str, enum.Enum):
    social_communication = "social-communication"
    repetitive_sensory = "repetitive-sensory"
    developmental = "developmental"
    family_history = "family-history"


class SeverityLevel(str, enum.Enum):
    low = "low"
    mild = "mild"
    moderate = "moderate"
    high = "high"
    very_high = "very-high"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    assessment: Mapped["UserAssessmentData"] = relationship(back_populates="user", uselist=False)


class AuthToken(Base):
    __tablename__ = "auth_tokens"

    token: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class UserAssessmentData(Base):
    """Latest assessment per user. The role is locked after the first save."""

    __tablename__ = "user_assessment_data"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), unique=True, index=True)
    role: Mapped[AssessmentRole] = mapped_column(Enum(AssessmentRole))
    patient_id: Mapped[str] = mapped_column(String, unique=True, index=True)

    child_data_json: Mapped[str] = mapped_column(String, default="{}")
    last_assessment_answers_json: Mapped[str | None] = mapped_column(String, nullable=True)
    has_family_history: Mapped[bool] = mapped_column(Boolean, default=False)

    # Plain numeric columns; the scoring core owns how they are derived.
    questionnaire_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    model_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    model_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    fused_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    severity: Mapped[SeverityLevel | None] = mapped_column(Enum(SeverityLevel), nullable=True)

    assessment_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="assessment")


class AssessmentHistory(Base):
    __tablename__ = "assessment_history"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    # Per-user insertion order; created_at can collide within one clock tick.
    seq: Mapped[int] = mapped_column(Integer, index=True)
    role: Mapped[AssessmentRole] = mapped_column(Enum(AssessmentRole))

    questionnaire_score: Mapped[int] = mapped_column(Integer)
    ml_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    fused_score: Mapped[float] = mapped_column(Float)
    severity: Mapped[SeverityLevel] = mapped_column(Enum(SeverityLevel))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True, index=True)

    action: Mapped[str] = mapped_column(String, index=True)
    entity_type: Mapped[str] = mapped_column(String, index=True)
    entity_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    ip: Mapped[str | None] = mapped_column(String, nullable=True)
    device_id: Mapped[str | None] = mapped_column(String, nullable=True)

    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    # Tamper detection: hash chain
    prev_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    entry_hash: Mapped[str] = mapped_column(String, index=True)
