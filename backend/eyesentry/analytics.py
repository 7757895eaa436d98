# backend/eyesentry/analytics.py
from __future__ import annotations
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .db import get_db
from .models import PatientQuestionnaire
from .scoring import RISK_LEVELS, normalize_level

router = APIRouter(prefix="/analytics", tags=["analytics"])

FACTOR_COLUMNS = {
    "family_glaucoma": "Family History of Glaucoma",
    "ocular_steroid": "Ocular Steroid Use",
    "intravitreal": "Intravitreal Steroid Use",
    "systemic_steroid": "Systemic Steroid Use",
    "iop_baseline": "IOP Baseline",
    "vertical_asymmetry": "Vertical Asymmetry",
    "vertical_ratio": "Vertical Ratio",
}

# no names, no ids: safe to hand to researchers
EXPORT_COLUMNS = ["created_at", "age", "race", *FACTOR_COLUMNS.keys(), "total_score", "risk_level"]
FRAME_COLUMNS = ["id", "user_id", "first_name", "last_name"] + EXPORT_COLUMNS


class SummaryOut(BaseModel):
    total_count: int
    average_score: Optional[float] = None
    by_risk_level: Dict[str, int]

class CountOut(BaseModel):
    key: str
    count: int

class FactorOut(BaseModel):
    factor: str
    count: int
    percentage: float


def _parse_levels(risk_levels: Optional[str]) -> List[str]:
    if not risk_levels:
        return []
    return [normalize_level(s) for s in risk_levels.split(",") if s.strip()]


def load_frame(db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None,
               risk_levels: Optional[str] = None) -> pd.DataFrame:
    query = db.query(PatientQuestionnaire)
    if start_date:
        query = query.filter(PatientQuestionnaire.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        # end date is inclusive
        query = query.filter(PatientQuestionnaire.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    levels = _parse_levels(risk_levels)
    if levels:
        query = query.filter(PatientQuestionnaire.risk_level.in_(levels))

    records = [{c: getattr(r, c) for c in FRAME_COLUMNS} for r in query.all()]
    return pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)


def _counts(df: pd.DataFrame, column: str) -> List[CountOut]:
    if df.empty:
        return []
    vc = df[column].fillna("unknown").astype(str).value_counts()
    pairs = sorted(vc.items(), key=lambda kv: (-kv[1], kv[0]))
    return [CountOut(key=k, count=int(v)) for k, v in pairs]


@router.get("/summary", response_model=SummaryOut)
def summary(start_date: Optional[date] = None, end_date: Optional[date] = None,
            risk_levels: Optional[str] = Query(None, description="comma separated, e.g. High,Moderate"),
            db: Session = Depends(get_db)):
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    df = load_frame(db, start_date, end_date, risk_levels)
    by_level = {lvl: 0 for lvl in RISK_LEVELS}
    if df.empty:
        return SummaryOut(total_count=0, average_score=None, by_risk_level=by_level)
    for lvl, n in df["risk_level"].value_counts().items():
        by_level[str(lvl)] = int(n)
    return SummaryOut(
        total_count=int(len(df)),
        average_score=round(float(df["total_score"].mean()), 2),
        by_risk_level=by_level,
    )


@router.get("/risk-levels", response_model=List[CountOut])
def risk_level_distribution(start_date: Optional[date] = None, end_date: Optional[date] = None,
                            risk_levels: Optional[str] = None, db: Session = Depends(get_db)):
    return _counts(load_frame(db, start_date, end_date, risk_levels), "risk_level")


@router.get("/race", response_model=List[CountOut])
def race_distribution(start_date: Optional[date] = None, end_date: Optional[date] = None,
                      risk_levels: Optional[str] = None, db: Session = Depends(get_db)):
    return _counts(load_frame(db, start_date, end_date, risk_levels), "race")


@router.get("/age", response_model=List[CountOut])
def age_distribution(start_date: Optional[date] = None, end_date: Optional[date] = None,
                     risk_levels: Optional[str] = None, db: Session = Depends(get_db)):
    return _counts(load_frame(db, start_date, end_date, risk_levels), "age")


@router.get("/risk-factors", response_model=List[FactorOut])
def risk_factor_distribution(start_date: Optional[date] = None, end_date: Optional[date] = None,
                             risk_levels: Optional[str] = None, db: Session = Depends(get_db)):
    df = load_frame(db, start_date, end_date, risk_levels)
    total = len(df)
    out = []
    for col, label in FACTOR_COLUMNS.items():
        n = int(df[col].fillna(False).astype(bool).sum()) if total else 0
        out.append(FactorOut(factor=label, count=n, percentage=round(100.0 * n / total, 1) if total else 0.0))
    return out


@router.get("/export.csv")
def export_csv(start_date: Optional[date] = None, end_date: Optional[date] = None,
               risk_levels: Optional[str] = None, db: Session = Depends(get_db)):
    df = load_frame(db, start_date, end_date, risk_levels)[EXPORT_COLUMNS]
    df = df.sort_values("created_at", kind="stable") if not df.empty else df
    csv = df.to_csv(index=False)
    return Response(
        content=csv,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="questionnaires.csv"'},
    )
