from datetime import datetime, timedelta

import pytest

from eyesentry.conditional import REQUIRED_MESSAGE
from eyesentry.models import ConsultationLink
from eyesentry.specialists import INVALID_TOKEN, LINK_EXPIRY_DAYS


@pytest.fixture
def patient(client):
    return client.post("/profiles", json={"email": "pat@example.com", "first_name": "Pat"}).json()


@pytest.fixture
def doctor(client):
    return client.post("/profiles", json={"email": "doc@example.com", "role": "doctor"}).json()


def _question(client, **overrides):
    payload = {"question": "Optic nerve appearance?", "question_type": "text"}
    payload.update(overrides)
    r = client.post("/specialists/questions", json=payload)
    assert r.status_code == 200, r.text
    return r.json()


def _link(client, patient, doctor=None):
    r = client.post("/specialists/links",
                    json={"patient_id": patient["id"], "doctor_id": doctor["id"] if doctor else None})
    assert r.status_code == 200, r.text
    return r.json()


def _consultation(**overrides):
    body = {"specialist_name": "Dr. Lee", "specialist_credentials": "MD, FRCSC", "specialty": "Glaucoma"}
    body.update(overrides)
    return body


def test_select_question_needs_options(client):
    r = client.post("/specialists/questions", json={"question": "Stage?", "question_type": "select"})
    assert r.status_code == 400
    q = _question(client, question="Stage?", question_type="select", dropdown_options=["early", " ", "advanced"])
    assert q["dropdown_options"] == ["early", "advanced"]
    # options are dropped when the question stops being a select
    q = _question(client, question="Notes", question_type="multiline", dropdown_options=["a"])
    assert q["dropdown_options"] is None


def test_question_order_and_soft_delete(client):
    a = _question(client, question="A")
    b = _question(client, question="B")
    assert [q["question"] for q in client.get("/specialists/questions").json()] == ["A", "B"]

    r = client.post("/specialists/questions/reorder",
                    json=[{"id": a["id"], "display_order": 2}, {"id": b["id"], "display_order": 1}])
    assert r.status_code == 200
    assert [q["question"] for q in client.get("/specialists/questions").json()] == ["B", "A"]

    client.delete(f"/specialists/questions/{b['id']}")
    assert [q["question"] for q in client.get("/specialists/questions").json()] == ["A"]
    assert len(client.get("/specialists/questions", params={"include_inactive": True}).json()) == 2


def test_link_is_issued_for_thirty_days(client, patient, doctor):
    link = _link(client, patient, doctor)
    expires = datetime.fromisoformat(link["expires_at"])
    assert abs(expires - (datetime.utcnow() + timedelta(days=LINK_EXPIRY_DAYS))) < timedelta(minutes=1)
    assert link["is_used"] is False
    assert link["created_by_doctor_id"] == doctor["id"]
    assert client.get(f"/specialists/links/{link['consultation_token']}").json()["valid"] is True
    assert client.get("/specialists/links", params={"patient_id": patient["id"]}).json()[0]["id"] == link["id"]


def test_link_requires_patient_profile(client, patient, doctor):
    assert client.post("/specialists/links", json={"patient_id": "missing"}).status_code == 404
    assert client.post("/specialists/links", json={"patient_id": doctor["id"]}).status_code == 400
    r = client.post("/specialists/links", json={"patient_id": patient["id"], "doctor_id": patient["id"]})
    assert r.status_code == 400

    client.post(f"/profiles/{patient['id']}/suspend")
    assert client.post("/specialists/links", json={"patient_id": patient["id"]}).status_code == 403


def test_submit_consultation_uses_link_once(client, patient):
    q = _question(client, required=True)
    stage = _question(client, question="Stage?", question_type="select", dropdown_options=["early", "advanced"])
    link = _link(client, patient)
    token = link["consultation_token"]

    r = client.post(f"/specialists/consultations/{token}", json=_consultation(
        recommendations="Start drops.",
        responses=[{"question_id": q["id"], "response": "Cupping 0.7"},
                   {"question_id": stage["id"], "response": "early"}],
    ))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["patient_id"] == patient["id"]
    assert {x["question"]: x["response"] for x in body["responses"]} == {
        "Optic nerve appearance?": "Cupping 0.7", "Stage?": "early",
    }

    assert client.get(f"/specialists/links/{token}").json() == {"valid": False, "expires_at": None}
    again = client.post(f"/specialists/consultations/{token}", json=_consultation())
    assert again.status_code == 400
    assert again.json()["detail"] == INVALID_TOKEN

    listed = client.get("/specialists/consultations", params={"patient_id": patient["id"]}).json()
    assert [c["id"] for c in listed] == [body["id"]]
    responses = client.get("/specialists/responses", params={"patient_id": patient["id"]}).json()
    assert len(responses) == 2


def test_expired_link_is_rejected(client, db, patient):
    link = _link(client, patient)
    row = db.get(ConsultationLink, link["id"])
    row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    assert client.get(f"/specialists/links/{link['consultation_token']}").json()["valid"] is False
    r = client.post(f"/specialists/consultations/{link['consultation_token']}", json=_consultation())
    assert r.status_code == 400
    assert client.post("/specialists/consultations/not-a-token", json=_consultation()).status_code == 400


def test_invalid_responses_leave_link_unused(client, patient):
    required = _question(client, required=True)
    stage = _question(client, question="Stage?", question_type="select", dropdown_options=["early", "advanced"])
    pressure = _question(client, question="Target IOP?", question_type="number")
    token = _link(client, patient)["consultation_token"]

    r = client.post(f"/specialists/consultations/{token}", json=_consultation(responses=[]))
    assert r.json()["detail"] == REQUIRED_MESSAGE

    bad_cases = [
        [{"question_id": "unknown", "response": "x"}],
        [{"question_id": stage["id"], "response": "severe"}],
        [{"question_id": pressure["id"], "response": "low"}],
        [{"question_id": required["id"], "response": "a"}, {"question_id": required["id"], "response": "b"}],
    ]
    for responses in bad_cases:
        r = client.post(f"/specialists/consultations/{token}", json=_consultation(responses=responses))
        assert r.status_code == 400, responses

    assert client.get(f"/specialists/links/{token}").json()["valid"] is True
