import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from .db import get_db
from .models import Profile, UserRole

router = APIRouter(prefix="/profiles", tags=["profiles"])
log = logging.getLogger("uvicorn.error")

SUSPENDED = "This account is suspended. Contact support to restore access."


class ProfileIn(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None

class ProfileOut(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_approved: bool
    is_suspended: bool


def parse_role(role_str: Optional[str]) -> Optional[UserRole]:
    if not role_str:
        return None
    try:
        return UserRole(role_str.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="Invalid role. Use one of: patient, doctor, admin.",
        )


def to_out(p: Profile) -> ProfileOut:
    return ProfileOut(
        id=p.id,
        email=p.email,
        first_name=p.first_name,
        last_name=p.last_name,
        role=p.role.value,
        is_approved=bool(p.is_approved),
        is_suspended=bool(p.is_suspended),
    )


def _get_profile(db: Session, profile_id: str) -> Profile:
    profile = db.get(Profile, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


def ensure_active(db: Session, profile_id: Optional[str]) -> Optional[Profile]:
    """404 for an unknown profile, 403 for a suspended one. None passes through."""
    if not profile_id:
        return None
    profile = _get_profile(db, profile_id)
    if profile.is_suspended:
        raise HTTPException(status_code=403, detail=SUSPENDED)
    return profile


def _set_suspended(db: Session, profile_id: str, suspended: bool) -> ProfileOut:
    profile = _get_profile(db, profile_id)
    profile.is_suspended = suspended
    db.commit()
    db.refresh(profile)
    log.info("[profiles] %s suspended=%s", profile.id, suspended)
    return to_out(profile)


def upsert_profile(db: Session, *, email: str, first_name: Optional[str], last_name: Optional[str],
                   role_hint: Optional[UserRole]) -> Profile:
    """
    Resolve by email (case-insensitive); create or update names.
    A role hint that disagrees with the stored role is rejected.
    """
    email = email.strip().lower()
    profile = db.query(Profile).filter(Profile.email == email).one_or_none()

    if not profile:
        role = role_hint or UserRole.patient
        profile = Profile(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            # only doctors wait for approval
            is_approved=role != UserRole.doctor,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    if role_hint and profile.role != role_hint:
        raise HTTPException(
            status_code=409,
            detail=f"Role mismatch: your account is '{profile.role.value}', not '{role_hint.value}'.",
        )

    changed = False
    if first_name and profile.first_name != first_name:
        profile.first_name = first_name
        changed = True
    if last_name and profile.last_name != last_name:
        profile.last_name = last_name
        changed = True

    if changed:
        db.commit()
        db.refresh(profile)
    return profile


@router.post("", response_model=ProfileOut)
def create_or_update_profile(payload: ProfileIn, db: Session = Depends(get_db)):
    role_hint = parse_role(payload.role)
    profile = upsert_profile(
        db,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role_hint=role_hint,
    )
    return to_out(profile)


@router.get("", response_model=List[ProfileOut])
def list_profiles(role: Optional[str] = None, pending: bool = False, db: Session = Depends(get_db)):
    query = db.query(Profile)
    r = parse_role(role)
    if r:
        query = query.filter(Profile.role == r)
    if pending:
        query = query.filter(Profile.is_approved.is_(False))
    return [to_out(p) for p in query.order_by(Profile.email).all()]


@router.get("/{profile_id}", response_model=ProfileOut)
def get_profile(profile_id: str, db: Session = Depends(get_db)):
    return to_out(_get_profile(db, profile_id))


@router.post("/{profile_id}/approve", response_model=ProfileOut)
def approve_doctor(profile_id: str, db: Session = Depends(get_db)):
    profile = _get_profile(db, profile_id)
    if profile.role != UserRole.doctor:
        raise HTTPException(status_code=400, detail="Only doctor accounts need approval")
    profile.is_approved = True
    db.commit()
    db.refresh(profile)
    return to_out(profile)


@router.post("/{profile_id}/reject", response_model=ProfileOut)
def reject_doctor(profile_id: str, db: Session = Depends(get_db)):
    """Turn down a doctor's registration; the account stays but is blocked."""
    profile = _get_profile(db, profile_id)
    if profile.role != UserRole.doctor:
        raise HTTPException(status_code=400, detail="Only doctor accounts can be rejected")
    profile.is_approved = False
    profile.is_suspended = True
    db.commit()
    db.refresh(profile)
    log.info("[profiles] doctor %s rejected", profile.id)
    return to_out(profile)


@router.post("/{profile_id}/suspend", response_model=ProfileOut)
def suspend_profile(profile_id: str, db: Session = Depends(get_db)):
    return _set_suspended(db, profile_id, True)


@router.post("/{profile_id}/unsuspend", response_model=ProfileOut)
def unsuspend_profile(profile_id: str, db: Session = Depends(get_db)):
    return _set_suspended(db, profile_id, False)
