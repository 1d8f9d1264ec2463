import json
import logging
import os
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from services.screening import models
from services.screening.audit import verify_audit_chain, write_audit
from services.screening.auth import (
    create_access_token,
    get_current_session,
    get_current_user,
    hash_password,
    revoke_tokens,
    verify_password,
)
from services.screening.care_plan import schedule_complexity, severity_color
from services.screening.db import get_db, init_db
from services.screening.errors import InvalidInput
from services.screening.fusion import FUSION_FORMULA, Severity, classify, get_fused_score_result
from services.screening.progress import append_history, clear_history, compute_trend, list_history, recent_entries
from services.screening.question_banks import family_history_flag, generate_patient_id, get_question_weights, get_questions
from services.screening.schemas import (
    AssessmentResponse,
    AssessmentSubmitRequest,
    AuditLogResponse,
    AuditVerifyResponse,
    ContributorResponse,
    FusedScoreRequest,
    FusedScoreResponse,
    HistoryEntryResponse,
    HistoryResponse,
    PatientFusedScoreResponse,
    QuestionBankResponse,
    QuestionResponse,
    RegisterRequest,
    ScheduleResponse,
    ScoreRequest,
    ScoringResultResponse,
    SeverityResponse,
    TokenResponse,
    VideoPredictionPayload,
)
from services.screening.scoring import Answer, ScoringResult, VideoPrediction, answers_from_mapping, calculate_score

logging.basicConfig(level=os.getenv("SCREENING_LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

init_db()

app = FastAPI(title="ASD Screening API")


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _severity_response(severity: Severity) -> SeverityResponse:
    return SeverityResponse(level=severity.level.value, label=severity.label, recommendation=severity.recommendation)


def _scoring_response(result: ScoringResult) -> ScoringResultResponse:
    schedule = schedule_complexity(result.severity.level)
    video = None
    if result.video_prediction is not None:
        video = VideoPredictionPayload(
            prediction_score=result.video_prediction.prediction_score,
            confidence=result.video_prediction.confidence,
            features_detected=result.video_prediction.features_detected,
        )
    return ScoringResultResponse(
        normalized_score=result.normalized_score,
        raw_total=result.raw_total,
        max_possible=result.max_possible,
        severity=_severity_response(result.severity),
        severity_color=severity_color(result.severity.level),
        schedule=ScheduleResponse(
            level=schedule.level,
            task_count=schedule.task_count,
            task_duration=schedule.task_duration,
            description=schedule.description,
        ),
        top_contributors=[
            ContributorResponse(question=c.question, contribution=c.contribution, action=c.action)
            for c in result.top_contributors
        ],
        video_prediction=video,
        fused_score=result.fused_score,
        skipped_question_ids=result.skipped_question_ids,
    )


def _video_prediction(payload: VideoPredictionPayload | None) -> VideoPrediction | None:
    if payload is None:
        return None
    return VideoPrediction(
        prediction_score=payload.prediction_score,
        confidence=payload.confidence,
        features_detected=payload.features_detected,
    )


def _assessment_response(record: models.UserAssessmentData, result: ScoringResult | None) -> AssessmentResponse:
    answers = json.loads(record.last_assessment_answers_json) if record.last_assessment_answers_json else None
    return AssessmentResponse(
        id=record.id,
        user_id=record.user_id,
        role=record.role.value,
        patient_id=record.patient_id,
        child_data=json.loads(record.child_data_json or "{}"),
        answers=answers,
        questionnaire_score=record.questionnaire_score,
        model_score=record.model_score,
        fused_score=record.fused_score,
        severity=record.severity.value if record.severity else None,
        assessment_complete=record.assessment_complete,
        created_at=record.created_at.isoformat(),
        updated_at=record.updated_at.isoformat(),
        result=_scoring_response(result) if result is not None else None,
    )


def _resolve_family_history(flag: bool | None, role: models.AssessmentRole, answers: list[Answer]) -> bool:
    # Only a parent answering for their own child reports the family history;
    # a clinician must pass the flag explicitly.
    if flag is None:
        return role == models.AssessmentRole.parent and family_history_flag(answers)
    return flag


def _get_assessment(db: Session, user_id: str) -> models.UserAssessmentData | None:
    return db.query(models.UserAssessmentData).filter(models.UserAssessmentData.user_id == user_id).first()


@app.get("/health", tags=["Monitoring"])
def get_health():
    return {"status": "ok"}


@app.get("/version", tags=["Monitoring"])
def get_version():
    return {"service": "screening-api", "version": "0.1.0", "time": datetime.utcnow().isoformat()}


@app.post("/auth/register", response_model=TokenResponse, tags=["Auth"])
def register(payload: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    existing = db.query(models.User).filter(models.User.username == payload.username).first()
    if existing:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = models.User(username=payload.username, password_hash=hash_password(payload.password))
    db.add(user)
    db.flush()

    token = create_access_token(user_id=user.id, db=db)
    write_audit(
        db=db,
        request=request,
        actor_user_id=user.id,
        action="auth.register",
        entity_type="user",
        entity_id=user.id,
    )
    db.commit()
    return TokenResponse(access_token=token)


@app.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
def login(payload: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.username == payload.username).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token(user_id=user.id, db=db)

    write_audit(
        db=db,
        request=request,
        actor_user_id=user.id,
        action="auth.login",
        entity_type="user",
        entity_id=user.id,
    )
    db.commit()
    return TokenResponse(access_token=token)


@app.post("/auth/logout", tags=["Auth"])
def logout(
    request: Request,
    all_sessions: bool = Query(default=False),
    session: models.AuthToken = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    revoked = revoke_tokens(user_id=session.user_id, db=db, token=None if all_sessions else session.token)

    write_audit(
        db=db,
        request=request,
        actor_user_id=session.user_id,
        action="auth.logout",
        entity_type="user",
        entity_id=session.user_id,
    )
    db.commit()
    return {"status": "signed_out", "revoked": revoked}


@app.get("/questions/{role}", response_model=QuestionBankResponse, tags=["Questionnaire"])
def get_question_bank(role: models.AssessmentRole):
    weights = {qw.id: qw.weight for qw in get_question_weights(role)}
    return QuestionBankResponse(
        role=role.value,
        questions=[
            QuestionResponse(id=q.id, text=q.text, category=q.category.value, weight=weights[q.id])
            for q in get_questions(role)
        ],
    )


@app.post("/scoring/calculate", response_model=ScoringResultResponse, tags=["Scoring"])
def calculate(payload: ScoreRequest):
    answers = answers_from_mapping(payload.answers)
    result = calculate_score(
        answers,
        get_question_weights(payload.role),
        has_family_history=_resolve_family_history(payload.has_family_history, payload.role, answers),
        video_prediction=_video_prediction(payload.video_prediction),
    )
    return _scoring_response(result)


@app.post("/fused-score", response_model=FusedScoreResponse, tags=["Scoring"])
def compute_fused_score(payload: FusedScoreRequest):
    if payload.questionnaire_score is None:
        raise HTTPException(status_code=400, detail="Missing questionnaire_score")

    fused = get_fused_score_result(payload.questionnaire_score, payload.model_score, payload.model_confidence)
    logger.info(f"Fused score calculated: Q={payload.questionnaire_score}, M={payload.model_score}, F={fused.fused_score}")

    return FusedScoreResponse(
        questionnaire_score=fused.questionnaire_score,
        model_score=fused.model_score,
        fused_score=fused.fused_score,
        severity=_severity_response(fused.severity),
        formula=FUSION_FORMULA,
    )


@app.get("/fused-score", response_model=PatientFusedScoreResponse, tags=["Scoring"])
def get_patient_fused_score(patient_id: str | None = Query(default=None, alias="patientId"), db: Session = Depends(get_db)):
    if not patient_id:
        raise HTTPException(status_code=400, detail="Missing patientId parameter")

    record = db.query(models.UserAssessmentData).filter(models.UserAssessmentData.patient_id == patient_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Patient not found")

    if record.fused_score is not None:
        score = record.fused_score
    elif record.questionnaire_score is not None:
        score = record.questionnaire_score
    else:
        score = 0

    return PatientFusedScoreResponse(
        patient_id=patient_id,
        questionnaire_score=record.questionnaire_score,
        model_score=record.model_score,
        fused_score=record.fused_score,
        severity=_severity_response(classify(score)),
    )


@app.post("/assessments", response_model=AssessmentResponse, tags=["Assessments"])
def submit_assessment(
    payload: AssessmentSubmitRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    record = _get_assessment(db, user.id)
    if record and record.role != payload.role:
        raise HTTPException(status_code=409, detail=f"Account is linked to the {record.role.value} role")

    video = _video_prediction(payload.video_prediction)
    answers = answers_from_mapping(payload.answers)
    has_family_history = _resolve_family_history(payload.has_family_history, payload.role, answers)
    result = calculate_score(
        answers,
        get_question_weights(payload.role),
        has_family_history=has_family_history,
        video_prediction=video,
    )

    if record is None:
        patient_id = payload.patient_id or generate_patient_id(payload.role)
        taken = db.query(models.UserAssessmentData).filter(models.UserAssessmentData.patient_id == patient_id).first()
        if taken:
            raise HTTPException(status_code=409, detail="Patient ID already in use")
        record = models.UserAssessmentData(user_id=user.id, role=payload.role, patient_id=patient_id)
        db.add(record)

    record.child_data_json = json.dumps(payload.child_data)
    record.last_assessment_answers_json = json.dumps({q_id: v.value for q_id, v in payload.answers.items()})
    record.has_family_history = has_family_history
    record.questionnaire_score = result.normalized_score
    record.model_score = video.prediction_score if video else None
    record.model_confidence = video.confidence if video else None
    record.fused_score = result.final_score
    record.severity = result.severity.level
    record.assessment_complete = True
    record.updated_at = datetime.utcnow()
    db.flush()

    append_history(
        db=db,
        user_id=user.id,
        role=payload.role,
        questionnaire_score=result.normalized_score,
        ml_score=record.model_score,
        fused_score=result.final_score,
        severity=result.severity.level,
    )

    write_audit(
        db=db,
        request=request,
        actor_user_id=user.id,
        action="assessment.save",
        entity_type="user_assessment_data",
        entity_id=record.id,
    )

    db.commit()
    db.refresh(record)
    return _assessment_response(record, result)


@app.get("/assessments/me", response_model=AssessmentResponse, tags=["Assessments"])
def get_my_assessment(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    record = _get_assessment(db, user.id)
    if not record:
        raise HTTPException(status_code=404, detail="No assessment found")

    result = None
    if record.last_assessment_answers_json:
        video = None
        if record.model_score is not None:
            video = VideoPrediction(prediction_score=record.model_score, confidence=record.model_confidence)
        result = calculate_score(
            answers_from_mapping(json.loads(record.last_assessment_answers_json)),
            get_question_weights(record.role),
            has_family_history=record.has_family_history,
            video_prediction=video,
        )
    return _assessment_response(record, result)


@app.delete("/assessments/me", tags=["Assessments"])
def clear_my_assessment(request: Request, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    record = _get_assessment(db, user.id)
    if not record:
        raise HTTPException(status_code=404, detail="No assessment found")

    record_id = record.id
    db.delete(record)
    removed = clear_history(db=db, user_id=user.id)

    write_audit(
        db=db,
        request=request,
        actor_user_id=user.id,
        action="assessment.clear",
        entity_type="user_assessment_data",
        entity_id=record_id,
    )
    db.commit()
    return {"status": "cleared", "history_removed": removed}


@app.get("/assessments/me/history", response_model=HistoryResponse, tags=["Assessments"])
def get_my_history(
    limit: int = Query(default=5, ge=1, le=20),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    history = list_history(db=db, user_id=user.id)
    return HistoryResponse(
        total=len(history),
        trend=compute_trend([h.questionnaire_score for h in history]),
        recent=[
            HistoryEntryResponse(
                id=h.id,
                role=h.role.value,
                questionnaire_score=h.questionnaire_score,
                ml_score=h.ml_score,
                fused_score=h.fused_score,
                severity=h.severity.value,
                created_at=h.created_at.isoformat(),
            )
            for h in recent_entries(history, limit)
        ],
    )


@app.get("/audit/logs", response_model=list[AuditLogResponse], tags=["Audit"])
def list_audit_logs(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    # Only the requesting user's entries.
    rows = db.query(models.AuditLog).filter(models.AuditLog.actor_user_id == user.id).order_by(models.AuditLog.ts.asc()).all()
    return [
        AuditLogResponse(
            id=r.id,
            actor_user_id=r.actor_user_id,
            action=r.action,
            entity_type=r.entity_type,
            entity_id=r.entity_id,
            ip=r.ip,
            device_id=r.device_id,
            ts=r.ts.isoformat(),
            prev_hash=r.prev_hash,
            entry_hash=r.entry_hash,
        )
        for r in rows
    ]


@app.get("/audit/verify", response_model=AuditVerifyResponse, tags=["Audit"])
def verify_audit(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return AuditVerifyResponse(ok=verify_audit_chain(db))
