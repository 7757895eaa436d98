# backend/eyesentry/catalog.py
# Built-in glaucoma questionnaire. DB-driven questions are merged in by page_category.
from typing import Dict, List, Optional, Tuple

PAGE_CATEGORIES = ["patient_info", "medical_history", "clinical_measurements"]

YES = "yes"
NOT_AVAILABLE = "not_available"

# ---------- Option lists ----------
def _opts(*pairs: Tuple[str, str]) -> List[dict]:
    return [{"value": v, "label": l} for v, l in pairs]

YES_NO = _opts(("yes", "Yes"), ("no", "No"))

FAMILY_HISTORY = _opts(("yes", "Yes"), ("no", "No"), ("not_available", "Not Available"))

AGE_RANGES = _opts(
    ("0-50", "0-50"), ("51-60", "51-60"), ("61-70", "61-70"),
    ("71-80", "71-80"), ("81-90", "81-90"), ("91+", "91+"),
)

RACES = _opts(
    ("american_indian", "American Indian or Alaska Native"),
    ("asian", "Asian"),
    ("black", "Black or African American"),
    ("hispanic", "Hispanic or Latino"),
    ("pacific_islander", "Native Hawaiian or Pacific Islander"),
    ("white", "White"),
    ("other", "Other"),
)

TOPICAL_STEROIDS = _opts(
    ("prednisolone", "Prednisolone Acetate (Pred Forte, Omnipred)"),
    ("dexamethasone", "Dexamethasone (Maxidex)"),
    ("fluorometholone", "Fluorometholone (FML, FML Forte)"),
    ("loteprednol", "Loteprednol Etabonate (Lotemax, Inveltys)"),
    ("rimexolone", "Rimexolone (Vexol)"),
    ("other", "Other not listed"),
)

INTRAVITREAL_STEROIDS = _opts(
    ("triamcinolone", "Triamcinolone Acetonide (Triesence, Kenalog)"),
    ("dexamethasone", "Dexamethasone (Ozurdex)"),
    ("fluocinolone", "Fluocinolone Acetonide (Iluvien)"),
    ("other", "Other not listed"),
)

SYSTEMIC_STEROIDS = _opts(
    ("prednisone", "Prednisone (Deltasone, Sterapred)"),
    ("dexamethasone", "Dexamethasone (Decadron, DexPak)"),
    ("hydrocortisone", "Hydrocortisone (Cortef, Solu-Cortef)"),
    ("methylprednisolone", "Methylprednisolone (Medrol, Depo-Medrol)"),
    ("betamethasone", "Betamethasone (Betasone, Celestone)"),
    ("triamcinolone", "Triamcinolone (Kenalog, Aristocort)"),
    ("fludrocortisone", "Fludrocortisone (Florinef)"),
    ("cortisone", "Cortisone (Cortone)"),
    ("fluticasone", "Fluticasone (Veramyst, Flonase, Flovent)"),
    ("budesonide", "Budesonide (Pulmicort, Symbicort [with formoterol])"),
    ("beclomethasone", "Beclomethasone (Qvar)"),
    ("mometasone", "Mometasone (Asmanex, Dulera [with formoterol])"),
    ("ciclesonide", "Ciclesonide (Alvesco)"),
    ("other", "Other not listed"),
)

IOP_OPTIONS = _opts(("22_and_above", "22 and above"), ("21_and_under", "21 and under"), ("not_available", "Not Available"))
ASYMMETRY_OPTIONS = _opts(("0.2_and_above", "0.2 and above"), ("under_0.2", "Under 0.2"), ("not_available", "Not Available"))
CD_RATIO_OPTIONS = _opts(("0.6_and_above", "0.6 and above"), ("below_0.6", "Below 0.6"), ("not_available", "Not Available"))


def _q(qid: str, text: str, qtype: str, page: str, order: int,
       options: Optional[List[dict]] = None,
       parent: Optional[str] = None, required_value: Optional[str] = None) -> dict:
    return {
        "id": qid,
        "question": text,
        "question_type": qtype,
        "page_category": page,
        "display_order": order,
        "required": True,
        "tooltip": None,
        "options": options or [],
        "conditional_parent_id": parent,
        "conditional_required_value": required_value,
        "builtin": True,
    }


QUESTIONNAIRE_PAGES: List[List[dict]] = [
    # Page 1: Basic Patient Information
    [
        _q("firstName", "Patient First Name", "text", "patient_info", 1),
        _q("lastName", "Patient Last Name", "text", "patient_info", 2),
        _q("age", "Age", "select", "patient_info", 3, AGE_RANGES),
        _q("race", "Race", "select", "patient_info", 4, RACES),
    ],
    # Page 2: Family and Medication History
    [
        _q("familyGlaucoma", "Has anyone in your immediate family been diagnosed with open-angle glaucoma?",
           "select", "medical_history", 1, FAMILY_HISTORY),
        _q("ocularSteroid", "Are you taking and have you ever taken any ophthalmic topical steroids?",
           "select", "medical_history", 2, YES_NO),
        _q("steroidType", "Which ophthalmic topical steroid are you taking or have taken?",
           "select", "medical_history", 3, TOPICAL_STEROIDS, "ocularSteroid", YES),
        _q("intravitreal", "Are you taking and have you ever taken any intravitreal steroids?",
           "select", "medical_history", 4, YES_NO),
        _q("intravitrealType", "Which intravitreal steroid are you taking or have taken?",
           "select", "medical_history", 5, INTRAVITREAL_STEROIDS, "intravitreal", YES),
        _q("systemicSteroid", "Are you taking and have you ever taken any systemic steroids?",
           "select", "medical_history", 6, YES_NO),
        _q("systemicSteroidType", "Which systemic steroid are you taking or have taken?",
           "select", "medical_history", 7, SYSTEMIC_STEROIDS, "systemicSteroid", YES),
    ],
    # Page 3: Clinical Measurements
    [
        _q("iopBaseline", "IOP Baseline is >22 \\ Handheld Tonometer", "select", "clinical_measurements", 1, IOP_OPTIONS),
        _q("verticalAsymmetry", "Vertical C:D disc asymmetry (>0.2) \\ Fundoscope", "select",
           "clinical_measurements", 2, ASYMMETRY_OPTIONS),
        _q("verticalRatio", "Vertical C:D ratio (>0.6)", "select", "clinical_measurements", 3, CD_RATIO_OPTIONS),
    ],
]

BUILTIN_IDS = {q["id"] for page in QUESTIONNAIRE_PAGES for q in page}

# parent id -> (child id, value the parent must have for the child to apply)
CONDITIONAL_CHILDREN: Dict[str, Tuple[str, str]] = {
    "ocularSteroid": ("steroidType", YES),
    "intravitreal": ("intravitrealType", YES),
    "systemicSteroid": ("systemicSteroidType", YES),
}

# Older clients sent misspelled keys for the intravitreal child
LEGACY_KEYS = {
    "intravitralType": "intravitrealType",
    "intravitealType": "intravitrealType",
    "intravitreal_type": "intravitrealType",
}


def normalize_answers(answers: Dict[str, object]) -> Dict[str, str]:
    """Map legacy keys onto current ids and coerce values to strings ('' for None)."""
    out: Dict[str, str] = {}
    legacy: Dict[str, str] = {}
    for key, value in (answers or {}).items():
        val = "" if value is None else str(value).strip()
        if key in LEGACY_KEYS:
            legacy[LEGACY_KEYS[key]] = legacy.get(LEGACY_KEYS[key]) or val
        else:
            out[key] = val
    # a legacy key only fills a current id that is missing or blank
    for key, val in legacy.items():
        if not out.get(key):
            out[key] = val
    return out


def question_to_dict(q) -> dict:
    """Shape an ORM Question like the built-in entries."""
    return {
        "id": q.id,
        "question": q.question,
        "question_type": q.question_type,
        "page_category": q.page_category,
        "display_order": q.display_order,
        "required": bool(q.required),
        "tooltip": q.tooltip,
        "options": [
            {
                "id": o.id,
                "value": o.option_value,
                "label": o.option_text,
                "score": o.score,
                "display_order": o.display_order,
                "tooltip": o.tooltip,
            }
            for o in sorted(q.options, key=lambda o: (o.display_order, o.option_text))
        ],
        "conditional_parent_id": q.conditional_parent_id,
        "conditional_required_value": q.conditional_required_value,
        "builtin": False,
    }


def build_pages(db_questions=()) -> List[List[dict]]:
    """
    Built-in pages with active DB questions appended to the page matching
    their page_category, each in display_order.
    """
    pages = [list(p) for p in QUESTIONNAIRE_PAGES]
    extra: Dict[str, List[dict]] = {c: [] for c in PAGE_CATEGORIES}
    for q in db_questions:
        if not q.is_active:
            continue
        extra.setdefault(q.page_category, []).append(question_to_dict(q))

    for idx, cat in enumerate(PAGE_CATEGORIES):
        pages[idx].extend(sorted(extra.pop(cat, []), key=lambda d: d["display_order"]))
    # unknown categories get their own trailing page
    for cat in sorted(extra):
        if extra[cat]:
            pages.append(sorted(extra[cat], key=lambda d: d["display_order"]))
    return pages
