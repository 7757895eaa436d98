# backend/eyesentry/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS, SEED_DEFAULTS
from .db import Base, engine, SessionLocal
from . import models  # noqa: F401  (registers tables on Base)
from .questionnaires import router as questionnaires_router
from .questions import router as questions_router
from .risk import router as risk_router
from .profiles import router as profiles_router
from .notifications import api_router as email_router, router as notifications_router
from .analytics import router as analytics_router
from .specialists import router as specialists_router
from .seed import seed_default_advice

# Create tables
Base.metadata.create_all(bind=engine)


def seed_defaults() -> int:
    if not SEED_DEFAULTS:
        return 0
    db = SessionLocal()
    try:
        return seed_default_advice(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    seed_defaults()
    yield


app = FastAPI(title="EyeSentry", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/status")
def status():
    return {"ok": True}


# Routers
app.include_router(questionnaires_router)
app.include_router(questions_router)
app.include_router(risk_router)
app.include_router(profiles_router)
app.include_router(email_router)
app.include_router(notifications_router)
app.include_router(analytics_router)
app.include_router(specialists_router)
