import os

# must be set before the app modules read their config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_DEFAULTS"] = "0"
os.environ["DEV_MAIL_DIR"] = ""

import pytest
from fastapi.testclient import TestClient

from eyesentry.db import Base, engine, SessionLocal
from eyesentry.main import app


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def answers():
    """A complete questionnaire that scores 0 (Low)."""
    return {
        "firstName": "Jane",
        "lastName": "Doe",
        "age": "51-60",
        "race": "white",
        "familyGlaucoma": "no",
        "ocularSteroid": "no",
        "intravitreal": "no",
        "systemicSteroid": "no",
        "iopBaseline": "21_and_under",
        "verticalAsymmetry": "under_0.2",
        "verticalRatio": "below_0.6",
    }
