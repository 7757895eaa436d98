# backend/eyesentry/questionnaires.py
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from .db import get_db
from .models import PatientQuestionnaire, Question
from .profiles import ensure_active
from .catalog import build_pages, normalize_answers
from .conditional import apply_answer_change, dependency_map, is_visible, prune_hidden, validate_all
from .risk import load_scoring_inputs, lookup_advice
from .scoring import Factor, ScoreResult, calculate_risk_score

router = APIRouter(tags=["questionnaires"])
log = logging.getLogger("uvicorn.error")

NOT_UPDATED = "No questionnaire was updated. Ensure you have permission to edit this questionnaire."


# ---------- Schemas ----------
class QuestionnaireIn(BaseModel):
    user_id: Optional[str] = None
    doctor_id: Optional[str] = None
    answers: Dict[str, Any]

class SubmitOut(BaseModel):
    success: bool
    id: str
    score: int
    risk_level: str
    contributing_factors: List[Factor] = []
    advice: str

class QuestionnaireOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    doctor_id: Optional[str] = None
    first_name: str
    last_name: str
    age: str
    race: str
    family_glaucoma: bool
    ocular_steroid: bool
    steroid_type: Optional[str] = None
    intravitreal: bool
    intravitreal_type: Optional[str] = None
    systemic_steroid: bool
    systemic_steroid_type: Optional[str] = None
    iop_baseline: bool
    vertical_asymmetry: bool
    vertical_ratio: bool
    total_score: int
    risk_level: str
    metadata: Dict[str, Any] = {}
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

class AnswerChangeIn(BaseModel):
    answers: Dict[str, Any] = {}
    question_id: str
    value: Optional[str] = None

class AnswerChangeOut(BaseModel):
    answers: Dict[str, str]
    cleared: List[str] = []
    hidden: List[str] = []


# ---------- Helpers ----------
def _score_answers(db: Session, raw_answers: Dict[str, Any]):
    """Normalise, prune hidden children, validate, then score."""
    questions, options = load_scoring_inputs(db)
    deps = dependency_map(questions)
    answers = normalize_answers(raw_answers)
    answers, pruned = prune_hidden(answers, deps)
    if pruned:
        log.info("[questionnaire] dropped answers to hidden questions: %s", pruned)

    ok, message, missing = validate_all(build_pages(questions), answers, deps)
    if not ok:
        log.info("[questionnaire] validation failed, missing=%s", missing)
        raise HTTPException(status_code=400, detail=message)

    return answers, calculate_risk_score(answers, questions, options)


def _apply_columns(row: PatientQuestionnaire, answers: Dict[str, str], result: ScoreResult) -> None:
    row.first_name = answers.get("firstName", "")
    row.last_name = answers.get("lastName", "")
    row.age = answers.get("age", "")
    row.race = answers.get("race", "")
    row.family_glaucoma = answers.get("familyGlaucoma") == "yes"
    row.ocular_steroid = answers.get("ocularSteroid") == "yes"
    row.steroid_type = answers.get("steroidType") or None
    row.intravitreal = answers.get("intravitreal") == "yes"
    row.intravitreal_type = answers.get("intravitrealType") or None
    row.systemic_steroid = answers.get("systemicSteroid") == "yes"
    row.systemic_steroid_type = answers.get("systemicSteroidType") or None
    row.iop_baseline = answers.get("iopBaseline") == "22_and_above"
    row.vertical_asymmetry = answers.get("verticalAsymmetry") == "0.2_and_above"
    row.vertical_ratio = answers.get("verticalRatio") == "0.6_and_above"
    row.total_score = result.total_score
    row.risk_level = result.risk_level
    row.answers_metadata = dict(result.metadata)


def to_out(r: PatientQuestionnaire) -> QuestionnaireOut:
    return QuestionnaireOut(
        id=r.id,
        user_id=r.user_id,
        doctor_id=r.doctor_id,
        first_name=r.first_name,
        last_name=r.last_name,
        age=r.age,
        race=r.race,
        family_glaucoma=bool(r.family_glaucoma),
        ocular_steroid=bool(r.ocular_steroid),
        steroid_type=r.steroid_type,
        intravitreal=bool(r.intravitreal),
        intravitreal_type=r.intravitreal_type,
        systemic_steroid=bool(r.systemic_steroid),
        systemic_steroid_type=r.systemic_steroid_type,
        iop_baseline=bool(r.iop_baseline),
        vertical_asymmetry=bool(r.vertical_asymmetry),
        vertical_ratio=bool(r.vertical_ratio),
        total_score=r.total_score,
        risk_level=r.risk_level,
        metadata=r.answers_metadata or {},
        created_at=r.created_at.isoformat() if r.created_at else None,
        updated_at=r.updated_at.isoformat() if r.updated_at else None,
    )


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.exception("%s failed", what)
        raise HTTPException(status_code=400, detail=f"{what} failed: {e}")


# ---------- Form helpers ----------
@router.get("/questionnaire/pages")
def questionnaire_pages(db: Session = Depends(get_db)):
    questions = db.query(Question).filter(Question.is_active.is_(True)).all()
    return {"pages": build_pages(questions)}


@router.post("/questionnaire/answer", response_model=AnswerChangeOut)
def change_answer(payload: AnswerChangeIn, db: Session = Depends(get_db)):
    """Apply one answer change and reset any dependent answers it invalidates."""
    questions = db.query(Question).filter(Question.is_active.is_(True)).all()
    deps = dependency_map(questions)
    answers = normalize_answers(payload.answers)
    new, cleared = apply_answer_change(answers, payload.question_id, payload.value, deps)
    hidden = sorted(child for child in deps if not is_visible(child, new, deps))
    return AnswerChangeOut(answers=new, cleared=cleared, hidden=hidden)


# ---------- Submit ----------
@router.post("/questionnaires", response_model=SubmitOut)
def submit_questionnaire(payload: QuestionnaireIn, db: Session = Depends(get_db)) -> SubmitOut:
    ensure_active(db, payload.user_id)

    answers, result = _score_answers(db, payload.answers)
    advice = lookup_advice(db, result.risk_level)

    row = PatientQuestionnaire(user_id=payload.user_id, doctor_id=payload.doctor_id)
    _apply_columns(row, answers, result)
    db.add(row)
    _commit(db, "Questionnaire submission")
    db.refresh(row)

    log.info("[questionnaire] saved id=%s score=%s level=%s", row.id, row.total_score, row.risk_level)
    return SubmitOut(
        success=True,
        id=row.id,
        score=result.total_score,
        risk_level=result.risk_level,
        contributing_factors=result.contributing_factors,
        advice=advice,
    )


# ---------- Read ----------
@router.get("/questionnaires", response_model=List[QuestionnaireOut])
def list_questionnaires(user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    rows = (
        db.query(PatientQuestionnaire)
          .filter(PatientQuestionnaire.user_id == user_id)
          .order_by(PatientQuestionnaire.created_at.desc(), PatientQuestionnaire.id.desc())
          .all()
    )
    return [to_out(r) for r in rows]


@router.get("/questionnaires/{questionnaire_id}", response_model=QuestionnaireOut)
def get_questionnaire(questionnaire_id: str, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    row = db.get(PatientQuestionnaire, questionnaire_id)
    if not row or (user_id is not None and row.user_id != user_id):
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    return to_out(row)


# ---------- Update / delete ----------
@router.put("/questionnaires/{questionnaire_id}", response_model=SubmitOut)
def update_questionnaire(questionnaire_id: str, payload: QuestionnaireIn, db: Session = Depends(get_db)) -> SubmitOut:
    row = db.get(PatientQuestionnaire, questionnaire_id)
    if not row or row.user_id != payload.user_id:
        raise HTTPException(status_code=404, detail=NOT_UPDATED)
    ensure_active(db, row.user_id)

    answers, result = _score_answers(db, payload.answers)
    advice = lookup_advice(db, result.risk_level)

    _apply_columns(row, answers, result)
    if payload.doctor_id:
        row.doctor_id = payload.doctor_id
    _commit(db, "Questionnaire update")
    db.refresh(row)

    log.info("[questionnaire] updated id=%s score=%s level=%s", row.id, row.total_score, row.risk_level)
    return SubmitOut(
        success=True,
        id=row.id,
        score=result.total_score,
        risk_level=result.risk_level,
        contributing_factors=result.contributing_factors,
        advice=advice,
    )


@router.delete("/questionnaires/{questionnaire_id}")
def delete_questionnaire(questionnaire_id: str, db: Session = Depends(get_db)):
    row = db.get(PatientQuestionnaire, questionnaire_id)
    if not row:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    db.delete(row)
    _commit(db, "Questionnaire delete")
    return {"ok": True}
