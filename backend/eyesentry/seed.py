# backend/eyesentry/seed.py
import logging

from sqlalchemy.orm import Session

from .db import execute_sql
from .models import RiskAssessmentAdvice
from .scoring import DEFAULT_ADVICE

log = logging.getLogger("uvicorn.error")

# level -> (min_score, max_score)
DEFAULT_RANGES = {
    "Low": (0, 1),
    "Moderate": (2, 3),
    "High": (4, 100),
}


def seed_default_advice(db: Session) -> int:
    """Insert the built-in advice rows when the table is empty. Returns rows inserted."""
    rows = execute_sql(db, "SELECT COUNT(*) AS n FROM risk_assessment_advice")
    if rows[0]["n"]:
        return 0
    for level, (lo, hi) in DEFAULT_RANGES.items():
        db.add(RiskAssessmentAdvice(risk_level=level, min_score=lo, max_score=hi, advice=DEFAULT_ADVICE[level]))
    db.commit()
    log.info("[seed] inserted %d default advice rows", len(DEFAULT_RANGES))
    return len(DEFAULT_RANGES)
