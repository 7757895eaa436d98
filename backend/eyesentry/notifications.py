# backend/eyesentry/notifications.py
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from typing import Optional
from html import escape
import os, re, smtplib, ssl, socket
from email.message import EmailMessage
from email.utils import make_msgid
from datetime import datetime
import logging

from .config import (
    APP_NAME, DEV_MAIL_DIR, SMTP_FROM, SMTP_HOST, SMTP_PASS, SMTP_PORT, SMTP_TIMEOUT, SMTP_USER,
)
from .db import get_db
from .models import PatientQuestionnaire
from .risk import lookup_advice

api_router = APIRouter(prefix="/api", tags=["email"])
router = APIRouter(prefix="/notifications", tags=["notifications"])
log = logging.getLogger("uvicorn.error")

MISSING_FIELDS = "Missing required fields: to, subject, and html are required"


def _config_ok() -> bool:
    return bool(SMTP_HOST and SMTP_PORT and SMTP_USER and SMTP_PASS and SMTP_FROM)


def _smtp_connect_and_auth():
    """
    Connect and authenticate; returns an smtplib SMTP/SMTP_SSL instance.
    Supports SMTPS on 465 and STARTTLS on anything else.
    """
    if not _config_ok():
        raise RuntimeError("CONFIG_MISSING: Set SMTP_HOST/PORT/USER/PASS/FROM.")

    context = ssl.create_default_context()
    if SMTP_PORT == 465:
        server = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT, context=context)
        server.ehlo()
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT)
        server.ehlo()
        server.starttls(context=context)
        server.ehlo()
    server.login(SMTP_USER, SMTP_PASS)
    return server


def _send_email(to_email: str, subject: str, html: str, text: Optional[str] = None) -> dict:
    """Send one message; returns a small receipt dict. Raises RuntimeError on any failure."""
    message_id = make_msgid(domain="eyesentrymed.com")

    # Dev "file outbox" so the UI keeps working without SMTP
    if DEV_MAIL_DIR:
        os.makedirs(DEV_MAIL_DIR, exist_ok=True)
        ts = datetime.utcnow().strftime("%Y%m%d-%H%M%S-%f")
        safe_to = re.sub(r"[^\w@.+-]", "_", to_email)
        fn = os.path.join(DEV_MAIL_DIR, f"{ts}-{safe_to}.eml")
        with open(fn, "w", encoding="utf-8") as f:
            f.write(f"From: {SMTP_FROM or '<unset>'}\nTo: {to_email}\nSubject: {subject}\n"
                    f"Message-ID: {message_id}\n\n{text or ''}\n\n{html}")
        log.info("email written to outbox %s", fn)
        return {"messageId": message_id, "accepted": [to_email], "outbox": fn}

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = SMTP_FROM
    msg["To"] = to_email
    msg["Message-ID"] = message_id
    msg.set_content(text or "This message contains HTML content.")
    msg.add_alternative(html, subtype="html")

    server = None
    try:
        server = _smtp_connect_and_auth()
        refused = server.send_message(msg)
    except smtplib.SMTPAuthenticationError as e:
        raise RuntimeError(f"AUTH_FAILED: {e}")
    except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, socket.timeout, OSError) as e:
        # Port blocked / host unreachable / TLS handshake issues
        raise RuntimeError(f"NETWORK_ERROR: {e}")
    except smtplib.SMTPException as e:
        raise RuntimeError(f"SMTP_ERROR: {e}")
    finally:
        if server is not None:
            try:
                server.quit()
            except smtplib.SMTPException:
                pass

    accepted = [to_email] if to_email not in (refused or {}) else []
    return {"messageId": message_id, "accepted": accepted, "rejected": list((refused or {}).keys())}


# -----------------------------
# Schemas
# -----------------------------
class EmailIn(BaseModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    html: Optional[str] = None

class SendResultsIn(BaseModel):
    email: EmailStr
    questionnaire_id: str


def render_results_email(q: PatientQuestionnaire, advice: str) -> tuple:
    name = escape(f"{q.first_name} {q.last_name}".strip())
    subject = f"{APP_NAME}: Glaucoma Risk Assessment Results"
    when = q.created_at.strftime("%Y-%m-%d %H:%M") if q.created_at else ""
    html = (
        f"<h2>{escape(APP_NAME)} Risk Assessment</h2>"
        f"<p>Patient: <strong>{name}</strong></p>"
        f"<ul><li>Risk level: <strong>{escape(q.risk_level)}</strong></li>"
        f"<li>Total score: {q.total_score}</li>"
        f"<li>Assessed on: {when}</li></ul>"
        f"<p>{escape(advice)}</p>"
        f"<p><small>This screening supports, and does not replace, clinical judgment.</small></p>"
    )
    text = (
        f"{APP_NAME} Risk Assessment\n\n"
        f"Patient: {q.first_name} {q.last_name}\n"
        f"Risk level: {q.risk_level}\n"
        f"Total score: {q.total_score}\n"
        f"Assessed on: {when}\n\n"
        f"{advice}\n"
    )
    return subject, html, text


# -----------------------------
# Routes
# -----------------------------
@api_router.get("/health")
def health():
    return {"status": "ok"}


@api_router.post("/email")
def send_email(body: EmailIn):
    log.info("Received email request: to=%s subject=%s", body.to, body.subject)
    if not (body.to and body.subject and body.html):
        log.error("email request missing fields: to=%s subject=%s html_set=%s",
                  body.to, body.subject, bool(body.html))
        return JSONResponse(status_code=400, content={"success": False, "error": MISSING_FIELDS})
    try:
        info = _send_email(body.to, body.subject, body.html)
    except Exception as e:
        log.exception("api/email failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Failed to send email"})
    log.info("Email sent successfully: %s", info.get("messageId"))
    return {"success": True, "data": info}


@router.get("/diag")
def notifications_diag():
    """
    Non-destructive health check: verifies config and attempts SMTP connect+auth.
    Does NOT send an email.
    """
    status = "OK"
    detail = ""
    if DEV_MAIL_DIR:
        detail = "DEV_OUTBOX"
    else:
        try:
            srv = _smtp_connect_and_auth()
            try:
                srv.noop()
            finally:
                try:
                    srv.quit()
                except smtplib.SMTPException:
                    pass
        except Exception as e:
            status = "ERROR"
            detail = str(e)
            log.error("notifications/diag: %s", detail)

    return {
        "status": status,                 # OK or ERROR
        "detail": detail,                 # CONFIG_MISSING / AUTH_FAILED / NETWORK_ERROR / ...
        "host": SMTP_HOST, "port": SMTP_PORT,
        "user_set": bool(SMTP_USER),
        "pass_set": bool(SMTP_PASS),
        "from_set": bool(SMTP_FROM),
        "dev_outbox": bool(DEV_MAIL_DIR),
        "app_name": APP_NAME,
    }


@router.post("/send-results")
def send_results(body: SendResultsIn, db: Session = Depends(get_db)):
    q = db.get(PatientQuestionnaire, body.questionnaire_id)
    if not q:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    subject, html, text = render_results_email(q, lookup_advice(db, q.risk_level))
    try:
        info = _send_email(body.email, subject, html, text)
        return {"ok": True, "messageId": info.get("messageId")}
    except Exception as e:
        log.exception("send-results failed")
        raise HTTPException(status_code=502, detail=f"{e}")
