# backend/eyesentry/questions.py
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field, validator
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .db import get_db
from .models import Question, DropdownOption, Profile
from .catalog import BUILTIN_IDS, PAGE_CATEGORIES, question_to_dict

router = APIRouter(prefix="/admin", tags=["admin-questions"])
log = logging.getLogger("uvicorn.error")

QUESTION_TYPES = ("select", "text", "number")


# ---------- Schemas ----------
class OptionIn(BaseModel):
    option_value: str = Field(..., min_length=1, max_length=128)
    option_text: str = Field(..., min_length=1, max_length=255)
    score: Optional[int] = 0
    display_order: Optional[int] = None
    tooltip: Optional[str] = None

    @validator("option_value", "option_text")
    def _strip_non_empty(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

class OptionPatch(BaseModel):
    option_text: Optional[str] = Field(None, min_length=1, max_length=255)
    score: Optional[int] = None
    display_order: Optional[int] = None
    tooltip: Optional[str] = None

class QuestionIn(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    question_type: str = "select"
    page_category: str = "medical_history"
    display_order: Optional[int] = None
    required: bool = False
    tooltip: Optional[str] = None
    conditional_parent_id: Optional[str] = None
    conditional_required_value: Optional[str] = None
    created_by: Optional[str] = None
    options: List[OptionIn] = []

    @validator("question_type")
    def _known_type(cls, v):
        if v not in QUESTION_TYPES:
            raise ValueError(f"question_type must be one of {', '.join(QUESTION_TYPES)}")
        return v

    @validator("page_category")
    def _known_page(cls, v):
        if v not in PAGE_CATEGORIES:
            raise ValueError(f"page_category must be one of {', '.join(PAGE_CATEGORIES)}")
        return v

class QuestionPatch(BaseModel):
    question: Optional[str] = Field(None, min_length=1, max_length=2000)
    display_order: Optional[int] = None
    required: Optional[bool] = None
    is_active: Optional[bool] = None
    tooltip: Optional[str] = None
    conditional_parent_id: Optional[str] = None
    conditional_required_value: Optional[str] = None

class OrderItem(BaseModel):
    id: str
    display_order: int = Field(..., ge=0)


# ---------- Helpers ----------
def _get_question(db: Session, question_id: str) -> Question:
    q = db.get(Question, question_id)
    if not q:
        raise HTTPException(status_code=404, detail="Question not found")
    return q


def _check_parent(db: Session, question_id: Optional[str], parent_id: Optional[str], required_value: Optional[str]):
    """Parent must exist (built-in or DB), come with a required value, and not form a cycle."""
    if not parent_id:
        return
    if not required_value:
        raise HTTPException(status_code=400, detail="conditional_required_value is required with a parent")
    if parent_id in BUILTIN_IDS:
        return
    seen = {question_id} if question_id else set()
    cur = db.get(Question, parent_id)
    if not cur:
        raise HTTPException(status_code=400, detail="Conditional parent question not found")
    while cur is not None:
        if cur.id in seen:
            raise HTTPException(status_code=400, detail="Conditional parent would create a cycle")
        seen.add(cur.id)
        cur = db.get(Question, cur.conditional_parent_id) if cur.conditional_parent_id else None


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        log.warning("%s conflict: %s", what, e)
        raise HTTPException(status_code=409, detail=f"{what} conflicts with an existing row")
    except SQLAlchemyError as e:
        db.rollback()
        log.exception("%s failed", what)
        raise HTTPException(status_code=400, detail=f"{what} failed: {e}")


def _apply_order(db: Session, rows_by_id: dict, items: List[OrderItem], what: str) -> None:
    unknown = [i.id for i in items if i.id not in rows_by_id]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown ids for {what}: {', '.join(unknown)}")
    for item in items:
        rows_by_id[item.id].display_order = item.display_order
    _commit(db, what)
    log.info("[admin] %s: %d rows reordered", what, len(items))


# ---------- Questions ----------
@router.get("/questions")
def list_questions(include_inactive: bool = False, db: Session = Depends(get_db)):
    query = db.query(Question)
    if not include_inactive:
        query = query.filter(Question.is_active.is_(True))
    rows = query.order_by(Question.page_category, Question.display_order, Question.created_at).all()
    out = []
    for q in rows:
        d = question_to_dict(q)
        d["is_active"] = bool(q.is_active)
        out.append(d)
    return out


@router.post("/questions")
def create_question(payload: QuestionIn, db: Session = Depends(get_db)):
    if payload.created_by and not db.get(Profile, payload.created_by):
        raise HTTPException(status_code=400, detail="created_by profile not found")
    _check_parent(db, None, payload.conditional_parent_id, payload.conditional_required_value)

    order = payload.display_order
    if order is None:
        order = db.query(Question).filter(Question.page_category == payload.page_category).count() + 1

    q = Question(
        question=payload.question.strip(),
        question_type=payload.question_type,
        page_category=payload.page_category,
        display_order=order,
        required=payload.required,
        tooltip=payload.tooltip,
        conditional_parent_id=payload.conditional_parent_id,
        conditional_required_value=payload.conditional_required_value,
        created_by=payload.created_by,
    )
    seen_values = set()
    for idx, o in enumerate(payload.options, start=1):
        if o.option_value in seen_values:
            raise HTTPException(status_code=409, detail=f"Duplicate option value '{o.option_value}'")
        seen_values.add(o.option_value)
        q.options.append(DropdownOption(
            option_value=o.option_value,
            option_text=o.option_text,
            score=o.score,
            display_order=o.display_order if o.display_order is not None else idx,
            tooltip=o.tooltip,
        ))
    db.add(q)
    _commit(db, "Question create")
    db.refresh(q)
    log.info("[admin] question created id=%s page=%s", q.id, q.page_category)
    return question_to_dict(q)


@router.patch("/questions/{question_id}")
def update_question(question_id: str, payload: QuestionPatch, db: Session = Depends(get_db)):
    q = _get_question(db, question_id)
    fields = payload.dict(exclude_unset=True)
    if "conditional_parent_id" in fields or "conditional_required_value" in fields:
        _check_parent(
            db, q.id,
            fields.get("conditional_parent_id", q.conditional_parent_id),
            fields.get("conditional_required_value", q.conditional_required_value),
        )
    for key, value in fields.items():
        setattr(q, key, value)
    _commit(db, "Question update")
    db.refresh(q)
    return question_to_dict(q)


@router.delete("/questions/{question_id}")
def deactivate_question(question_id: str, db: Session = Depends(get_db)):
    # soft delete: submitted answers keep referencing the id
    q = _get_question(db, question_id)
    q.is_active = False
    _commit(db, "Question deactivate")
    return {"ok": True, "id": q.id, "is_active": False}


@router.post("/questions/reorder")
def reorder_questions(items: List[OrderItem], db: Session = Depends(get_db)):
    ids = [i.id for i in items]
    rows = db.query(Question).filter(Question.id.in_(ids)).all() if ids else []
    _apply_order(db, {r.id: r for r in rows}, items, "Question reorder")
    return {"ok": True, "count": len(items)}


# ---------- Dropdown options ----------
@router.post("/questions/{question_id}/options")
def add_option(question_id: str, payload: OptionIn, db: Session = Depends(get_db)):
    q = _get_question(db, question_id)
    if any(o.option_value == payload.option_value for o in q.options):
        raise HTTPException(status_code=409, detail=f"Duplicate option value '{payload.option_value}'")
    order = payload.display_order
    if order is None:
        order = max([o.display_order for o in q.options] or [0]) + 1
    opt = DropdownOption(
        question_id=q.id,
        option_value=payload.option_value,
        option_text=payload.option_text,
        score=payload.score,
        display_order=order,
        tooltip=payload.tooltip,
    )
    db.add(opt)
    _commit(db, "Option create")
    db.refresh(opt)
    return {"id": opt.id, "question_id": q.id, "value": opt.option_value, "label": opt.option_text,
            "score": opt.score, "display_order": opt.display_order}


@router.patch("/options/{option_id}")
def update_option(option_id: str, payload: OptionPatch, db: Session = Depends(get_db)):
    opt = db.get(DropdownOption, option_id)
    if not opt:
        raise HTTPException(status_code=404, detail="Option not found")
    for key, value in payload.dict(exclude_unset=True).items():
        setattr(opt, key, value)
    _commit(db, "Option update")
    db.refresh(opt)
    log.info("[admin] option %s updated (score=%s)", opt.id, opt.score)
    return {"id": opt.id, "question_id": opt.question_id, "value": opt.option_value, "label": opt.option_text,
            "score": opt.score, "display_order": opt.display_order}


@router.delete("/options/{option_id}")
def delete_option(option_id: str, db: Session = Depends(get_db)):
    opt = db.get(DropdownOption, option_id)
    if not opt:
        raise HTTPException(status_code=404, detail="Option not found")
    db.delete(opt)
    _commit(db, "Option delete")
    return {"ok": True}


@router.post("/questions/{question_id}/options/reorder")
def reorder_dropdown_options(question_id: str, items: List[OrderItem], db: Session = Depends(get_db)):
    q = _get_question(db, question_id)
    _apply_order(db, {o.id: o for o in q.options}, items, "Option reorder")
    db.refresh(q)
    return {"ok": True, "options": question_to_dict(q)["options"]}
