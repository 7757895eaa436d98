# backend/eyesentry/specialists.py
"""
Specialist consultations.

A doctor issues a one-time link for a patient. An outside specialist opens
it, answers the admin-managed specialist questions and leaves notes. The
link expires after LINK_EXPIRY_DAYS and cannot be used twice.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field, validator
from sqlalchemy.orm import Session

from .db import get_db
from .models import (
    ConsultationLink,
    Profile,
    SpecialistConsultation,
    SpecialistQuestion,
    SpecialistResponse,
    UserRole,
)
from .conditional import REQUIRED_MESSAGE
from .profiles import ensure_active
from .questions import OrderItem, _apply_order, _commit

router = APIRouter(prefix="/specialists", tags=["specialists"])
log = logging.getLogger("uvicorn.error")

LINK_EXPIRY_DAYS = 30
QUESTION_TYPES = ("text", "multiline", "select", "number")
INVALID_TOKEN = "Invalid or expired consultation token"


# ---------- Schemas ----------
class SpecialistQuestionIn(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    question_type: str = "text"
    display_order: Optional[int] = None
    required: bool = False
    dropdown_options: Optional[List[str]] = None
    created_by: Optional[str] = None

    @validator("question_type")
    def _known_type(cls, v):
        if v not in QUESTION_TYPES:
            raise ValueError(f"question_type must be one of {', '.join(QUESTION_TYPES)}")
        return v

class SpecialistQuestionPatch(BaseModel):
    question: Optional[str] = Field(None, min_length=1, max_length=2000)
    question_type: Optional[str] = None
    display_order: Optional[int] = None
    required: Optional[bool] = None
    is_active: Optional[bool] = None
    dropdown_options: Optional[List[str]] = None

    @validator("question_type")
    def _known_type(cls, v):
        if v is not None and v not in QUESTION_TYPES:
            raise ValueError(f"question_type must be one of {', '.join(QUESTION_TYPES)}")
        return v

class SpecialistQuestionOut(BaseModel):
    id: str
    question: str
    question_type: str
    display_order: int
    required: bool
    is_active: bool
    dropdown_options: Optional[List[str]] = None

class LinkIn(BaseModel):
    patient_id: str
    doctor_id: Optional[str] = None

class LinkOut(BaseModel):
    id: str
    patient_id: str
    consultation_token: str
    created_by_doctor_id: Optional[str] = None
    is_used: bool
    expires_at: str
    created_at: Optional[str] = None

class TokenStatus(BaseModel):
    valid: bool
    expires_at: Optional[str] = None

class ResponseIn(BaseModel):
    question_id: str
    response: str

class ResponseOut(BaseModel):
    id: str
    question_id: str
    question: Optional[str] = None
    response: str
    created_at: Optional[str] = None

class ConsultationIn(BaseModel):
    specialist_name: str = Field(..., min_length=1, max_length=255)
    specialist_credentials: str = Field(..., min_length=1, max_length=255)
    specialty: str = Field(..., min_length=1, max_length=255)
    consultation_notes: Optional[str] = None
    recommendations: Optional[str] = None
    responses: List[ResponseIn] = []

class ConsultationOut(BaseModel):
    id: str
    patient_id: str
    consultation_link_id: str
    specialist_name: str
    specialist_credentials: str
    specialty: str
    consultation_notes: Optional[str] = None
    recommendations: Optional[str] = None
    created_at: Optional[str] = None
    responses: List[ResponseOut] = []


# ---------- Helpers ----------
def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _question_out(q: SpecialistQuestion) -> SpecialistQuestionOut:
    return SpecialistQuestionOut(
        id=q.id,
        question=q.question,
        question_type=q.question_type,
        display_order=q.display_order,
        required=bool(q.required),
        is_active=bool(q.is_active),
        dropdown_options=q.dropdown_options,
    )


def _link_out(link: ConsultationLink) -> LinkOut:
    return LinkOut(
        id=link.id,
        patient_id=link.patient_id,
        consultation_token=link.consultation_token,
        created_by_doctor_id=link.created_by_doctor_id,
        is_used=bool(link.is_used),
        expires_at=link.expires_at.isoformat(),
        created_at=_iso(link.created_at),
    )


def _response_out(r: SpecialistResponse) -> ResponseOut:
    return ResponseOut(
        id=r.id,
        question_id=r.question_id,
        question=r.question.question if r.question else None,
        response=r.response,
        created_at=_iso(r.created_at),
    )


def _consultation_out(c: SpecialistConsultation) -> ConsultationOut:
    return ConsultationOut(
        id=c.id,
        patient_id=c.link.patient_id,
        consultation_link_id=c.consultation_link_id,
        specialist_name=c.specialist_name,
        specialist_credentials=c.specialist_credentials,
        specialty=c.specialty,
        consultation_notes=c.consultation_notes,
        recommendations=c.recommendations,
        created_at=_iso(c.created_at),
        responses=[_response_out(r) for r in c.responses],
    )


def _clean_options(question_type: str, options: Optional[List[str]]) -> Optional[List[str]]:
    """Select questions need at least one choice; other types carry none."""
    if question_type != "select":
        return None
    cleaned = [o.strip() for o in (options or []) if o and o.strip()]
    if not cleaned:
        raise HTTPException(status_code=400, detail="Select questions need at least one dropdown option")
    return cleaned


def _get_question(db: Session, question_id: str) -> SpecialistQuestion:
    q = db.get(SpecialistQuestion, question_id)
    if not q:
        raise HTTPException(status_code=404, detail="Specialist question not found")
    return q


def is_link_valid(link: Optional[ConsultationLink], now: Optional[datetime] = None) -> bool:
    if link is None or link.is_used:
        return False
    return link.expires_at > (now or datetime.utcnow())


def _find_link(db: Session, token: str) -> Optional[ConsultationLink]:
    return db.query(ConsultationLink).filter(ConsultationLink.consultation_token == token).one_or_none()


def _check_responses(questions: List[SpecialistQuestion], responses: List[ResponseIn]) -> None:
    by_id = {q.id: q for q in questions}
    answered = {}
    for r in responses:
        q = by_id.get(r.question_id)
        if q is None:
            raise HTTPException(status_code=400, detail=f"Unknown specialist question: {r.question_id}")
        if r.question_id in answered:
            raise HTTPException(status_code=400, detail=f"Question answered twice: {r.question_id}")
        value = r.response.strip()
        answered[r.question_id] = value
        if not value:
            continue
        if q.question_type == "select" and value not in (q.dropdown_options or []):
            raise HTTPException(status_code=400, detail=f"'{value}' is not an option for: {q.question}")
        if q.question_type == "number":
            try:
                float(value)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"A number is required for: {q.question}")

    if any(q.required and not answered.get(q.id) for q in questions):
        raise HTTPException(status_code=400, detail=REQUIRED_MESSAGE)


# ---------- Questions ----------
@router.get("/questions", response_model=List[SpecialistQuestionOut])
def list_questions(include_inactive: bool = False, db: Session = Depends(get_db)):
    query = db.query(SpecialistQuestion)
    if not include_inactive:
        query = query.filter(SpecialistQuestion.is_active.is_(True))
    rows = query.order_by(SpecialistQuestion.display_order, SpecialistQuestion.created_at).all()
    return [_question_out(q) for q in rows]


@router.post("/questions", response_model=SpecialistQuestionOut)
def create_question(payload: SpecialistQuestionIn, db: Session = Depends(get_db)):
    if payload.created_by and not db.get(Profile, payload.created_by):
        raise HTTPException(status_code=400, detail="created_by profile not found")
    order = payload.display_order
    if order is None:
        order = db.query(SpecialistQuestion).count() + 1
    q = SpecialistQuestion(
        question=payload.question.strip(),
        question_type=payload.question_type,
        display_order=order,
        required=payload.required,
        dropdown_options=_clean_options(payload.question_type, payload.dropdown_options),
        created_by=payload.created_by,
    )
    db.add(q)
    _commit(db, "Specialist question create")
    db.refresh(q)
    log.info("[specialists] question created id=%s type=%s", q.id, q.question_type)
    return _question_out(q)


@router.patch("/questions/{question_id}", response_model=SpecialistQuestionOut)
def update_question(question_id: str, payload: SpecialistQuestionPatch, db: Session = Depends(get_db)):
    q = _get_question(db, question_id)
    fields = payload.dict(exclude_unset=True)
    if "question_type" in fields or "dropdown_options" in fields:
        qtype = fields.get("question_type") or q.question_type
        fields["dropdown_options"] = _clean_options(qtype, fields.get("dropdown_options", q.dropdown_options))
    for key, value in fields.items():
        setattr(q, key, value)
    _commit(db, "Specialist question update")
    db.refresh(q)
    return _question_out(q)


@router.delete("/questions/{question_id}")
def deactivate_question(question_id: str, db: Session = Depends(get_db)):
    # soft delete: stored responses keep their question
    q = _get_question(db, question_id)
    q.is_active = False
    _commit(db, "Specialist question deactivate")
    return {"ok": True, "id": q.id, "is_active": False}


@router.post("/questions/reorder")
def reorder_questions(items: List[OrderItem], db: Session = Depends(get_db)):
    ids = [i.id for i in items]
    rows = db.query(SpecialistQuestion).filter(SpecialistQuestion.id.in_(ids)).all() if ids else []
    _apply_order(db, {r.id: r for r in rows}, items, "Specialist question reorder")
    return {"ok": True, "count": len(items)}


# ---------- Consultation links ----------
@router.post("/links", response_model=LinkOut)
def create_link(payload: LinkIn, db: Session = Depends(get_db)):
    patient = ensure_active(db, payload.patient_id)
    if patient.role != UserRole.patient:
        raise HTTPException(status_code=400, detail="Consultation links can only be created for patients")
    if payload.doctor_id:
        doctor = db.get(Profile, payload.doctor_id)
        if not doctor or doctor.role != UserRole.doctor:
            raise HTTPException(status_code=400, detail="doctor_id must reference a doctor profile")

    link = ConsultationLink(
        patient_id=patient.id,
        consultation_token=secrets.token_urlsafe(32),
        created_by_doctor_id=payload.doctor_id,
        expires_at=datetime.utcnow() + timedelta(days=LINK_EXPIRY_DAYS),
    )
    db.add(link)
    _commit(db, "Consultation link create")
    db.refresh(link)
    log.info("[specialists] link issued for patient=%s expires=%s", link.patient_id, link.expires_at)
    return _link_out(link)


@router.get("/links", response_model=List[LinkOut])
def list_links(patient_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    rows = (
        db.query(ConsultationLink)
          .filter(ConsultationLink.patient_id == patient_id)
          .order_by(ConsultationLink.created_at.desc())
          .all()
    )
    return [_link_out(r) for r in rows]


@router.get("/links/{token}", response_model=TokenStatus)
def validate_token(token: str, db: Session = Depends(get_db)):
    link = _find_link(db, token)
    if not is_link_valid(link):
        return TokenStatus(valid=False)
    return TokenStatus(valid=True, expires_at=link.expires_at.isoformat())


# ---------- Consultations ----------
@router.post("/consultations/{token}", response_model=ConsultationOut)
def submit_consultation(token: str, payload: ConsultationIn, db: Session = Depends(get_db)):
    link = _find_link(db, token)
    if not is_link_valid(link):
        raise HTTPException(status_code=400, detail=INVALID_TOKEN)

    questions = db.query(SpecialistQuestion).filter(SpecialistQuestion.is_active.is_(True)).all()
    _check_responses(questions, payload.responses)

    consultation = SpecialistConsultation(
        consultation_link_id=link.id,
        specialist_name=payload.specialist_name.strip(),
        specialist_credentials=payload.specialist_credentials.strip(),
        specialty=payload.specialty.strip(),
        consultation_notes=payload.consultation_notes,
        recommendations=payload.recommendations,
    )
    for r in payload.responses:
        if r.response.strip():
            consultation.responses.append(SpecialistResponse(
                patient_id=link.patient_id,
                question_id=r.question_id,
                response=r.response.strip(),
            ))
    link.is_used = True
    db.add(consultation)
    _commit(db, "Consultation submit")
    db.refresh(consultation)
    log.info("[specialists] consultation %s stored for patient=%s", consultation.id, link.patient_id)
    return _consultation_out(consultation)


@router.get("/consultations", response_model=List[ConsultationOut])
def list_consultations(patient_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    rows = (
        db.query(SpecialistConsultation)
          .join(ConsultationLink, SpecialistConsultation.consultation_link_id == ConsultationLink.id)
          .filter(ConsultationLink.patient_id == patient_id)
          .order_by(SpecialistConsultation.created_at.desc())
          .all()
    )
    return [_consultation_out(c) for c in rows]


@router.get("/responses", response_model=List[ResponseOut])
def list_responses(patient_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    rows = (
        db.query(SpecialistResponse)
          .filter(SpecialistResponse.patient_id == patient_id)
          .order_by(SpecialistResponse.created_at.desc())
          .all()
    )
    return [_response_out(r) for r in rows]
