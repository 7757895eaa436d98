# backend/eyesentry/risk.py
import logging
from typing import Optional, List, Dict, Any
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from .db import get_db
from .models import RiskAssessmentAdvice, Question, DropdownOption
from .catalog import normalize_answers
from .conditional import dependency_map, prune_hidden
from .scoring import RISK_LEVELS, calculate_risk_score, default_advice, normalize_level, Factor

router = APIRouter(prefix="/risk", tags=["risk"])
log = logging.getLogger("uvicorn.error")


# ---------- Helpers ----------
def lookup_advice(db: Session, risk_level: str) -> str:
    """Advice text for a level; falls back to the built-in text if the row is missing or the read fails."""
    try:
        row = (
            db.query(RiskAssessmentAdvice)
            .filter(RiskAssessmentAdvice.risk_level == normalize_level(risk_level))
            .one_or_none()
        )
    except SQLAlchemyError as e:
        # a failed read aborts the transaction on Postgres; the caller still has to commit
        db.rollback()
        log.warning("Could not fetch risk assessment advice: %s", e)
        return default_advice(risk_level)
    if row and row.advice:
        return row.advice
    return default_advice(risk_level)


def load_scoring_inputs(db: Session):
    """Active DB questions and the dropdown options that belong to them."""
    questions = db.query(Question).filter(Question.is_active.is_(True)).all()
    ids = [q.id for q in questions]
    options = (
        db.query(DropdownOption).filter(DropdownOption.question_id.in_(ids)).all()
        if ids else []
    )
    return questions, options


# ---------- Schemas ----------
class AdviceIn(BaseModel):
    risk_level: Optional[str] = None
    min_score: int = Field(..., ge=0)
    max_score: int = Field(..., ge=0)
    advice: str = Field(..., min_length=1, max_length=5000)

class AdviceOut(BaseModel):
    id: int
    risk_level: str
    min_score: int
    max_score: int
    advice: str
    updated_at: Optional[str] = None

class CalculateIn(BaseModel):
    answers: Dict[str, Any]

class CalculateOut(BaseModel):
    total_score: int
    risk_level: str
    contributing_factors: List[Factor] = []
    advice: str


def _advice_out(r: RiskAssessmentAdvice) -> AdviceOut:
    return AdviceOut(
        id=r.id,
        risk_level=r.risk_level,
        min_score=r.min_score,
        max_score=r.max_score,
        advice=r.advice,
        updated_at=r.updated_at.isoformat() if r.updated_at else None,
    )


# ---------- Advice ----------
@router.get("/advice", response_model=List[AdviceOut])
def list_advice(db: Session = Depends(get_db)):
    rows = (
        db.query(RiskAssessmentAdvice)
          .order_by(RiskAssessmentAdvice.min_score.asc(), RiskAssessmentAdvice.id.asc())
          .all()
    )
    return [_advice_out(r) for r in rows]


@router.put("/advice", response_model=AdviceOut)
def upsert_advice(payload: AdviceIn, db: Session = Depends(get_db)):
    level = normalize_level(payload.risk_level)
    if not level:
        raise HTTPException(status_code=400, detail="Risk level is required")
    if level not in RISK_LEVELS:
        raise HTTPException(status_code=400, detail=f"Risk level must be one of {', '.join(RISK_LEVELS)}")
    if payload.min_score > payload.max_score:
        raise HTTPException(status_code=400, detail="min_score cannot be greater than max_score")

    row = db.query(RiskAssessmentAdvice).filter(RiskAssessmentAdvice.risk_level == level).one_or_none()
    if row:
        row.min_score = payload.min_score
        row.max_score = payload.max_score
        row.advice = payload.advice.strip()
    else:
        row = RiskAssessmentAdvice(
            risk_level=level,
            min_score=payload.min_score,
            max_score=payload.max_score,
            advice=payload.advice.strip(),
        )
        db.add(row)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.exception("advice upsert failed")
        raise HTTPException(status_code=400, detail=f"Could not save advice: {e}")
    db.refresh(row)
    log.info("[risk] advice saved for level=%s (%s-%s)", level, row.min_score, row.max_score)
    return _advice_out(row)


# ---------- Preview ----------
@router.post("/calculate", response_model=CalculateOut)
def calculate(payload: CalculateIn, db: Session = Depends(get_db)) -> CalculateOut:
    questions, options = load_scoring_inputs(db)
    answers = normalize_answers(payload.answers)
    answers, _ = prune_hidden(answers, dependency_map(questions))
    result = calculate_risk_score(answers, questions, options)
    return CalculateOut(
        total_score=result.total_score,
        risk_level=result.risk_level,
        contributing_factors=result.contributing_factors,
        advice=lookup_advice(db, result.risk_level),
    )
