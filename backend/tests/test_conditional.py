from types import SimpleNamespace

from eyesentry.catalog import QUESTIONNAIRE_PAGES, build_pages, normalize_answers
from eyesentry.conditional import (
    REQUIRED_MESSAGE,
    apply_answer_change,
    dependency_map,
    is_visible,
    prune_hidden,
    validate_all,
    validate_page,
)


def test_changing_parent_away_from_yes_clears_child():
    deps = dependency_map()
    answers = {"ocularSteroid": "yes", "steroidType": "prednisolone"}

    new, cleared = apply_answer_change(answers, "ocularSteroid", "no", deps)

    assert new == {"ocularSteroid": "no", "steroidType": ""}
    assert cleared == ["steroidType"]
    # input untouched
    assert answers["steroidType"] == "prednisolone"


def test_changing_parent_to_yes_keeps_child():
    deps = dependency_map()
    new, cleared = apply_answer_change({"intravitreal": "no"}, "intravitreal", "yes", deps)
    assert new == {"intravitreal": "yes"}
    assert cleared == []


def test_unrelated_change_does_not_touch_children():
    deps = dependency_map()
    answers = {"systemicSteroid": "yes", "systemicSteroidType": "prednisone"}
    new, cleared = apply_answer_change(answers, "race", "asian", deps)
    assert new["systemicSteroidType"] == "prednisone"
    assert cleared == []


def test_clearing_cascades_through_db_children():
    db_q = SimpleNamespace(id="q-dose", conditional_parent_id="steroidType",
                           conditional_required_value="dexamethasone")
    deps = dependency_map([db_q])
    answers = {"ocularSteroid": "yes", "steroidType": "dexamethasone", "q-dose": "high"}

    new, cleared = apply_answer_change(answers, "ocularSteroid", "no", deps)

    assert new["steroidType"] == ""
    assert new["q-dose"] == ""
    assert sorted(cleared) == ["q-dose", "steroidType"]


def test_visibility_follows_parent_chain():
    db_q = SimpleNamespace(id="q-dose", conditional_parent_id="steroidType",
                           conditional_required_value="dexamethasone")
    deps = dependency_map([db_q])
    assert is_visible("race", {}, deps)
    assert not is_visible("steroidType", {"ocularSteroid": "no"}, deps)
    assert is_visible("steroidType", {"ocularSteroid": "yes"}, deps)
    # grandparent "no" hides the grandchild even if the child matches
    assert not is_visible("q-dose", {"ocularSteroid": "no", "steroidType": "dexamethasone"}, deps)


def test_prune_hidden_blanks_orphan_child_answers():
    deps = dependency_map()
    new, cleared = prune_hidden({"ocularSteroid": "no", "steroidType": "rimexolone"}, deps)
    assert new["steroidType"] == ""
    assert cleared == ["steroidType"]


def test_validate_page_skips_hidden_conditional_questions(answers):
    deps = dependency_map()
    page = QUESTIONNAIRE_PAGES[1]
    assert validate_page(page, answers, deps) == (True, None)

    answers["ocularSteroid"] = "yes"
    assert validate_page(page, answers, deps) == (False, REQUIRED_MESSAGE)

    answers["steroidType"] = "other"
    assert validate_page(page, answers, deps) == (True, None)


def test_validate_all_reports_missing_ids(answers):
    del answers["verticalRatio"]
    ok, message, missing = validate_all(build_pages(), answers, dependency_map())
    assert not ok
    assert message == REQUIRED_MESSAGE
    assert missing == ["verticalRatio"]


def test_normalize_answers_maps_legacy_keys():
    out = normalize_answers({"intravitralType": "triamcinolone", "age": None, "race": " black "})
    assert out == {"intravitrealType": "triamcinolone", "age": "", "race": "black"}

    # a current key wins over a legacy one
    out = normalize_answers({"intravitrealType": "fluocinolone", "intravitealType": "other"})
    assert out["intravitrealType"] == "fluocinolone"


def test_build_pages_merges_active_db_questions():
    q1 = SimpleNamespace(id="q1", question="Diabetes?", question_type="select", page_category="medical_history",
                         display_order=20, required=False, tooltip=None, options=[], is_active=True,
                         conditional_parent_id=None, conditional_required_value=None)
    q2 = SimpleNamespace(**{**q1.__dict__, "id": "q2", "display_order": 10})
    q3 = SimpleNamespace(**{**q1.__dict__, "id": "q3", "is_active": False})

    pages = build_pages([q1, q2, q3])

    assert len(pages) == 3
    ids = [q["id"] for q in pages[1]]
    assert ids[-2:] == ["q2", "q1"]
    assert "q3" not in ids
    # built-ins are untouched
    assert len(QUESTIONNAIRE_PAGES[1]) == 7
