# backend/eyesentry/config.py
import os
from pathlib import Path
from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


def load_env(path=ENV_PATH) -> bool:
    # variables already set in the process environment take precedence over the file
    return load_dotenv(dotenv_path=path, override=False)


load_env()

APP_NAME = os.getenv("APP_NAME", "EyeSentry")

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./eyesentry.db")

# CORS (comma separated)
_raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
CORS_ORIGINS = [o.strip() for o in _raw_origins.split(",") if o.strip()]

# SMTP relay (Resend by default: SMTPS on 465, user "resend", API key as password)
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.resend.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
SMTP_USER = os.getenv("SMTP_USER", "resend")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_FROM = os.getenv("SMTP_FROM", "EyeSentry <no-reply@email.eyesentrymed.com>")
SMTP_TIMEOUT = int(os.getenv("SMTP_TIMEOUT", "12"))
DEV_MAIL_DIR = os.getenv("DEV_MAIL_DIR", "")      # optional local file outbox

# Insert default advice rows on startup when the table is empty
SEED_DEFAULTS = os.getenv("SEED_DEFAULTS", "1").strip().lower() in ("1", "true", "yes", "y")
