# backend/eyesentry/conditional.py
"""
Parent/child question dependencies.

A child question ("which steroid?") only applies while its parent
("on steroids?") holds the required answer. Changing the parent away from
that answer resets the child, and the reset cascades down the chain.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .catalog import CONDITIONAL_CHILDREN

REQUIRED_MESSAGE = "Please answer all required questions before proceeding."

# child id -> (parent id, required parent value)
Deps = Dict[str, Tuple[str, str]]


def dependency_map(db_questions: Iterable = ()) -> Deps:
    deps: Deps = {child: (parent, value) for parent, (child, value) in CONDITIONAL_CHILDREN.items()}
    for q in db_questions:
        parent = getattr(q, "conditional_parent_id", None)
        value = getattr(q, "conditional_required_value", None)
        if parent and value:
            deps[q.id] = (parent, value)
    return deps


def children_of(deps: Deps) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for child, (parent, _) in deps.items():
        out.setdefault(parent, []).append(child)
    return out


def is_visible(question_id: str, answers: Dict[str, str], deps: Deps) -> bool:
    seen: Set[str] = set()
    qid = question_id
    while qid in deps:
        if qid in seen:
            # cyclic definition: treat as hidden rather than loop forever
            return False
        seen.add(qid)
        parent, required = deps[qid]
        if str(answers.get(parent, "")) != required:
            return False
        qid = parent
    return True


def _clear_subtree(answers: Dict[str, str], root: str, kids: Dict[str, List[str]], cleared: List[str]) -> None:
    stack = list(kids.get(root, []))
    seen: Set[str] = {root}
    while stack:
        child = stack.pop()
        if child in seen:
            continue
        seen.add(child)
        if answers.get(child):
            cleared.append(child)
        if child in answers:
            answers[child] = ""
        stack.extend(kids.get(child, []))


def apply_answer_change(answers: Dict[str, str], question_id: str, value: Optional[str],
                        deps: Deps) -> Tuple[Dict[str, str], List[str]]:
    """
    Return (new_answers, cleared_ids). The input dict is left untouched.
    Children whose required value no longer matches are reset to "".
    """
    new = dict(answers)
    new[question_id] = "" if value is None else str(value)
    cleared: List[str] = []
    kids = children_of(deps)

    for child in kids.get(question_id, []):
        _, required = deps[child]
        if new[question_id] == required:
            continue
        if new.get(child):
            cleared.append(child)
        if child in new:
            new[child] = ""
        _clear_subtree(new, child, kids, cleared)
    return new, cleared


def prune_hidden(answers: Dict[str, str], deps: Deps) -> Tuple[Dict[str, str], List[str]]:
    """Blank every answer whose question is hidden by its parent chain."""
    new = dict(answers)
    cleared = []
    for qid, val in answers.items():
        if qid in deps and val and not is_visible(qid, answers, deps):
            new[qid] = ""
            cleared.append(qid)
    return new, cleared


def validate_page(questions: List[dict], answers: Dict[str, str], deps: Deps) -> Tuple[bool, Optional[str]]:
    for q in questions:
        if not is_visible(q["id"], answers, deps):
            continue
        if q.get("required") and not answers.get(q["id"]):
            return False, REQUIRED_MESSAGE
    return True, None


def validate_all(pages: List[List[dict]], answers: Dict[str, str], deps: Deps) -> Tuple[bool, Optional[str], List[str]]:
    """Validate every page; also return the ids of the unanswered required questions."""
    missing = []
    for page in pages:
        for q in page:
            if q.get("required") and is_visible(q["id"], answers, deps) and not answers.get(q["id"]):
                missing.append(q["id"])
    if missing:
        return False, REQUIRED_MESSAGE, missing
    return True, None, []
