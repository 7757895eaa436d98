def _create(client, **overrides):
    payload = {
        "question": "Do you have diabetes?",
        "page_category": "medical_history",
        "options": [
            {"option_value": "yes", "option_text": "Yes", "score": 1},
            {"option_value": "no", "option_text": "No", "score": 0},
        ],
    }
    payload.update(overrides)
    r = client.post("/admin/questions", json=payload)
    assert r.status_code == 200, r.text
    return r.json()


def test_create_question_with_options(client):
    q = _create(client)
    assert q["builtin"] is False
    assert [(o["value"], o["display_order"], o["score"]) for o in q["options"]] == [("yes", 1, 1), ("no", 2, 0)]

    listed = client.get("/admin/questions").json()
    assert [x["id"] for x in listed] == [q["id"]]


def test_create_rejects_unknown_page_and_duplicate_values(client):
    r = client.post("/admin/questions", json={"question": "x", "page_category": "nowhere"})
    assert r.status_code == 422

    r = client.post("/admin/questions", json={
        "question": "x",
        "options": [{"option_value": "a", "option_text": "A"}, {"option_value": "a", "option_text": "A2"}],
    })
    assert r.status_code == 409


def test_conditional_parent_must_exist(client):
    r = client.post("/admin/questions", json={
        "question": "Which one?", "conditional_parent_id": "missing", "conditional_required_value": "yes",
    })
    assert r.status_code == 400

    # built-in parents are accepted
    q = _create(client, question="Steroid dose?", conditional_parent_id="ocularSteroid",
                conditional_required_value="yes")
    assert q["conditional_parent_id"] == "ocularSteroid"


def test_conditional_cycle_is_rejected(client):
    a = _create(client, question="A")
    b = _create(client, question="B", conditional_parent_id=a["id"], conditional_required_value="yes")
    r = client.patch(f"/admin/questions/{a['id']}", json={
        "conditional_parent_id": b["id"], "conditional_required_value": "yes",
    })
    assert r.status_code == 400


def test_soft_delete_hides_question(client):
    q = _create(client)
    r = client.delete(f"/admin/questions/{q['id']}")
    assert r.json()["is_active"] is False
    assert client.get("/admin/questions").json() == []
    inactive = client.get("/admin/questions", params={"include_inactive": True}).json()
    assert inactive[0]["is_active"] is False
    pages = client.get("/questionnaire/pages").json()["pages"]
    assert q["id"] not in [x["id"] for page in pages for x in page]


def test_option_crud(client):
    q = _create(client)
    r = client.post(f"/admin/questions/{q['id']}/options", json={"option_value": "unsure", "option_text": "Unsure"})
    assert r.status_code == 200
    opt = r.json()
    assert opt["display_order"] == 3

    dup = client.post(f"/admin/questions/{q['id']}/options", json={"option_value": "yes", "option_text": "Yes"})
    assert dup.status_code == 409

    r = client.patch(f"/admin/options/{opt['id']}", json={"score": 1})
    assert r.json()["score"] == 1

    assert client.delete(f"/admin/options/{opt['id']}").json() == {"ok": True}
    assert client.patch(f"/admin/options/{opt['id']}", json={"score": 2}).status_code == 404


def test_reorder_dropdown_options(client):
    q = _create(client)
    yes_id, no_id = [o["id"] for o in q["options"]]
    r = client.post(f"/admin/questions/{q['id']}/options/reorder", json=[
        {"id": yes_id, "display_order": 2},
        {"id": no_id, "display_order": 1},
    ])
    assert r.status_code == 200, r.text
    assert [o["value"] for o in r.json()["options"]] == ["no", "yes"]


def test_reorder_rejects_foreign_option_and_changes_nothing(client):
    q1 = _create(client, question="Q1")
    q2 = _create(client, question="Q2")
    r = client.post(f"/admin/questions/{q1['id']}/options/reorder", json=[
        {"id": q1["options"][0]["id"], "display_order": 9},
        {"id": q2["options"][0]["id"], "display_order": 1},
    ])
    assert r.status_code == 400
    orders = [o["display_order"] for o in client.get("/admin/questions").json()[0]["options"]]
    assert orders == [1, 2]


def test_reorder_questions(client):
    a = _create(client, question="A", display_order=1)
    b = _create(client, question="B", display_order=2)
    r = client.post("/admin/questions/reorder", json=[
        {"id": a["id"], "display_order": 2}, {"id": b["id"], "display_order": 1},
    ])
    assert r.status_code == 200
    assert [q["question"] for q in client.get("/admin/questions").json()] == ["B", "A"]


def test_blank_option_value_is_rejected(client):
    q = _create(client)
    r = client.post(f"/admin/questions/{q['id']}/options", json={"option_value": "   ", "option_text": "Blank"})
    assert r.status_code == 422
    r = client.post("/admin/questions", json={"question": "x", "options": [{"option_value": " ", "option_text": "A"}]})
    assert r.status_code == 422
    assert len(client.get("/admin/questions").json()) == 1
