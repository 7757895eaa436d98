import csv
import io
from datetime import datetime

from eyesentry.models import PatientQuestionnaire


def _row(db, level, score, race="white", age="51-60", created=None, **flags):
    db.add(PatientQuestionnaire(
        first_name="Jane", last_name="Doe", age=age, race=race,
        total_score=score, risk_level=level, created_at=created or datetime.utcnow(), **flags,
    ))
    db.commit()


def test_summary_empty(client):
    body = client.get("/analytics/summary").json()
    assert body == {"total_count": 0, "average_score": None,
                    "by_risk_level": {"Low": 0, "Moderate": 0, "High": 0}}


def test_summary_and_filters(client, db):
    _row(db, "Low", 0, created=datetime(2025, 3, 1, 10))
    _row(db, "Moderate", 2, race="black", created=datetime(2025, 3, 15, 10))
    _row(db, "High", 6, race="black", created=datetime(2025, 4, 2, 10), family_glaucoma=True)

    body = client.get("/analytics/summary").json()
    assert body["total_count"] == 3
    assert body["average_score"] == 2.67
    assert body["by_risk_level"] == {"Low": 1, "Moderate": 1, "High": 1}

    march = client.get("/analytics/summary", params={"start_date": "2025-03-01", "end_date": "2025-03-31"}).json()
    assert march["total_count"] == 2

    high = client.get("/analytics/summary", params={"risk_levels": "high,moderate"}).json()
    assert high["total_count"] == 2

    bad = client.get("/analytics/summary", params={"start_date": "2025-05-01", "end_date": "2025-03-01"})
    assert bad.status_code == 400


def test_distributions(client, db):
    _row(db, "Low", 0, race="white", age="61-70")
    _row(db, "Moderate", 2, race="black", age="61-70")
    _row(db, "High", 4, race="black", age="71-80", family_glaucoma=True, iop_baseline=True)

    assert client.get("/analytics/race").json() == [{"key": "black", "count": 2}, {"key": "white", "count": 1}]
    assert client.get("/analytics/age").json()[0] == {"key": "61-70", "count": 2}
    levels = {d["key"]: d["count"] for d in client.get("/analytics/risk-levels").json()}
    assert levels == {"Low": 1, "Moderate": 1, "High": 1}

    factors = {f["factor"]: f for f in client.get("/analytics/risk-factors").json()}
    assert factors["Family History of Glaucoma"]["count"] == 1
    assert factors["Family History of Glaucoma"]["percentage"] == 33.3
    assert factors["Vertical Ratio"]["count"] == 0


def test_export_is_anonymised(client, db):
    _row(db, "High", 4, race="hispanic", family_glaucoma=True)
    r = client.get("/analytics/export.csv")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(r.text)))
    assert len(rows) == 1
    assert "first_name" not in rows[0]
    assert "user_id" not in rows[0]
    assert rows[0]["race"] == "hispanic"
    assert rows[0]["risk_level"] == "High"
