# backend/eyesentry/scoring.py
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .catalog import BUILTIN_IDS

log = logging.getLogger("uvicorn.error")

FACTOR_POINTS = 2

# answer id -> (answer value that counts, label used in the breakdown)
BASE_FACTORS = [
    ("familyGlaucoma", "yes", "Family History of Glaucoma"),
    ("ocularSteroid", "yes", "Ocular Steroid Use"),
    ("intravitreal", "yes", "Intravitreal Steroid Use"),
    ("systemicSteroid", "yes", "Systemic Steroid Use"),
    ("iopBaseline", "22_and_above", "IOP Baseline"),
    ("verticalAsymmetry", "0.2_and_above", "Vertical Asymmetry"),
    ("verticalRatio", "0.6_and_above", "Vertical Ratio"),
]

RACE_POINTS = {"black": 2, "hispanic": 2}
AGE_POINTS = 0

HIGH_THRESHOLD = 4
MODERATE_THRESHOLD = 2

RISK_LEVELS = ["Low", "Moderate", "High"]

DEFAULT_ADVICE = {
    "Low": "Regular eye exams as recommended by your optometrist are sufficient.",
    "Moderate": "Consider more frequent eye exams and discuss with your doctor about potential preventive measures.",
    "High": (
        "Recommend eye exams every 2-3 years up to the age of 40 (or annually if three or more risk factors) "
        "and a comprehensive screening eye exam at 40 years old. Eye examination annually after age 40."
    ),
}


class Factor(BaseModel):
    question: str
    answer: str
    score: int


class ScoreResult(BaseModel):
    total_score: int
    risk_level: str
    base_factors: List[Factor] = []
    additional_factors: List[Factor] = []
    metadata: Dict[str, str] = {}

    @property
    def contributing_factors(self) -> List[Factor]:
        return list(self.base_factors) + list(self.additional_factors)


def risk_level_for(score: int) -> str:
    if score >= HIGH_THRESHOLD:
        return "High"
    if score >= MODERATE_THRESHOLD:
        return "Moderate"
    return "Low"


def normalize_level(level: Optional[str]) -> Optional[str]:
    """'low' / 'LOW ' -> 'Low'; unknown strings pass through capitalised."""
    if level is None:
        return None
    s = str(level).strip()
    return s.capitalize() if s else None


def default_advice(level: str) -> str:
    return DEFAULT_ADVICE.get(normalize_level(level) or "", "No specific advice available for this score range.")


def race_score(race: Optional[str]) -> int:
    return RACE_POINTS.get((race or "").strip().lower(), 0)


def calculate_risk_score(answers: Dict[str, str],
                         questions: Iterable = (),
                         options: Iterable = ()) -> ScoreResult:
    """
    Sum the built-in factor points, the race bonus and the scores of the
    dropdown options picked for DB-driven questions.

    ``questions`` are objects with ``id``/``question``; ``options`` carry
    ``question_id``/``option_value``/``score`` (ORM rows work as-is).
    """
    base_factors: List[Factor] = []
    base_total = 0

    r_score = race_score(answers.get("race"))
    if r_score > 0:
        base_factors.append(Factor(question="Race", answer=answers.get("race", ""), score=r_score))

    for qid, positive, label in BASE_FACTORS:
        ans = answers.get(qid, "") or ""
        if ans == positive:
            base_total += FACTOR_POINTS
            base_factors.append(Factor(question=label, answer=ans, score=FACTOR_POINTS))

    text_by_id = {q.id: q.question for q in questions}
    score_by_key = {
        (o.question_id, o.option_value): o.score
        for o in options
        if o.score is not None
    }

    dynamic_total = 0
    additional: List[Factor] = []
    metadata: Dict[str, str] = {}
    for qid, value in answers.items():
        if qid in BUILTIN_IDS or qid not in text_by_id or not value:
            continue
        metadata[qid] = value
        s = score_by_key.get((qid, value))
        if s is None:
            continue
        dynamic_total += s
        if s > 0:
            additional.append(Factor(question=text_by_id[qid], answer=value, score=s))

    total = base_total + AGE_POINTS + r_score + dynamic_total
    level = risk_level_for(total)

    log.info(
        "[score] base=%s race=%s dynamic=%s total=%s -> %s",
        base_total, r_score, dynamic_total, total, level,
    )
    return ScoreResult(
        total_score=total,
        risk_level=level,
        base_factors=base_factors,
        additional_factors=additional,
        metadata=metadata,
    )
