"""
Outbound mail queue backed by the mail_logs table.

Events are recorded as rows first and delivered later by a polling worker,
so a slow or unreachable SMTP relay never blocks a request. Every row carries
a unique event key; enqueueing the same key twice is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import smtplib
import threading
import time
from email.message import EmailMessage
from typing import Callable

from email_validator import validate_email, EmailNotValidError
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..core.config import settings
from ..db import SessionLocal
from ..models.mail_log import MailLog

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
POLL_SECONDS = 10
COOLDOWN = timedelta(seconds=60)
RETRY_DELAYS = (60, 300, 900)
BATCH_SIZE = 20

PENDING = "pending"
SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"

SessionFactory = Callable[[], Session]
Sender = Callable[["MailPayload"], None]


@dataclass
class MailPayload:
    event_key: str
    event_type: str
    subject: str
    body_text: str
    recipient_email: str
    recipient_user_id: int | None = None
    ticket_id: int | None = None

    @classmethod
    def from_log(cls, log: MailLog) -> "MailPayload":
        return cls(
            event_key=log.event_key,
            event_type=log.event_type,
            subject=log.subject,
            body_text=log.body_text or "",
            recipient_email=log.recipient_email,
            recipient_user_id=log.recipient_user_id,
            ticket_id=log.ticket_id,
        )

    def to_log(self, status: str, **fields) -> MailLog:
        return MailLog(
            event_key=self.event_key,
            event_type=self.event_type,
            ticket_id=self.ticket_id,
            recipient_user_id=self.recipient_user_id,
            recipient_email=self.recipient_email,
            subject=self.subject,
            body_text=self.body_text,
            status=status,
            attempts=0,
            **fields,
        )


def is_smtp_ready() -> bool:
    return bool(settings.smtp_host and settings.smtp_from)


def normalize_address(addr: str) -> str | None:
    if not addr:
        return None
    try:
        return validate_email(addr, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def smtp_send(payload: MailPayload) -> None:
    msg = EmailMessage()
    msg["Subject"] = payload.subject
    msg["From"] = f"Issue Tracker <{settings.smtp_from}>"
    msg["To"] = payload.recipient_email
    msg.set_content(payload.body_text)
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
        smtp.send_message(msg)


def _recently_sent(session: Session, payload: MailPayload, now: datetime) -> bool:
    # Same recipient, same kind of event, same ticket.
    hit = session.scalar(
        select(MailLog.id)
        .where(MailLog.recipient_email == payload.recipient_email)
        .where(MailLog.event_type == payload.event_type)
        .where(MailLog.ticket_id == payload.ticket_id)
        .where(MailLog.status == SENT)
        .where(MailLog.created_at >= now - COOLDOWN)
        .limit(1)
    )
    return hit is not None


def _skip_reason(session: Session, payload: MailPayload, now: datetime) -> str | None:
    address = normalize_address(payload.recipient_email)
    if address is None:
        return "Invalid recipient address"
    payload.recipient_email = address
    if _recently_sent(session, payload, now):
        return "Suppressed by cooldown"
    return None


def enqueue_mail(payload: MailPayload, session_factory: SessionFactory = SessionLocal) -> bool:
    """Record a pending mail for the worker. Returns False when it was skipped."""
    if not is_smtp_ready():
        logger.debug("SMTP not configured, dropping mail %s", payload.event_key)
        return False

    now = utcnow()
    with session_factory() as session:
        if session.scalar(select(MailLog.id).where(MailLog.event_key == payload.event_key)) is not None:
            logger.info("Mail %s already recorded", payload.event_key)
            return False

        reason = _skip_reason(session, payload, now)
        if reason:
            session.add(payload.to_log(SKIPPED, last_attempt_at=now, error_message=reason))
            session.commit()
            logger.info("Mail %s skipped: %s", payload.event_key, reason)
            return False

        session.add(payload.to_log(PENDING, next_attempt_at=now))
        session.commit()
        logger.info("Mail %s queued for %s", payload.event_key, payload.recipient_email)
        return True


def _next_backoff(attempts: int) -> int:
    return RETRY_DELAYS[min(attempts, len(RETRY_DELAYS)) - 1]


def _due(session: Session, now: datetime) -> list[MailLog]:
    stmt = (
        select(MailLog)
        .where(MailLog.status.in_([PENDING, FAILED]))
        .where(MailLog.next_attempt_at <= now)
        .where(MailLog.attempts < MAX_ATTEMPTS)
        .order_by(MailLog.id)
        .with_for_update(skip_locked=True)
        .limit(BATCH_SIZE)
    )
    return list(session.scalars(stmt))


def _attempt(log: MailLog, send: Sender, now: datetime) -> None:
    log.attempts += 1
    log.last_attempt_at = now
    try:
        send(MailPayload.from_log(log))
    except Exception as exc:
        log.status = FAILED
        log.error_message = str(exc)
        log.next_attempt_at = now + timedelta(seconds=_next_backoff(log.attempts))
        logger.exception("Mail %s failed (attempt %s)", log.event_key, log.attempts)
        return
    log.status = SENT
    log.error_message = None
    log.next_attempt_at = None
    logger.info("Mail %s sent", log.event_key)


def process_pending_mail(session_factory: SessionFactory = SessionLocal, send: Sender = smtp_send) -> int:
    """Try every due row once. Returns how many rows were attempted."""
    if not is_smtp_ready():
        return 0

    now = utcnow()
    with session_factory() as session:
        batch = _due(session, now)
        for log in batch:
            _attempt(log, send, now)
        session.commit()
    return len(batch)


def _worker_loop() -> None:
    while True:
        try:
            process_pending_mail()
        except Exception:
            logger.exception("Mail worker error")
        time.sleep(POLL_SECONDS)


def start_mail_worker_thread() -> None:
    if not is_smtp_ready():
        logger.info("SMTP not configured, mail worker not started")
        return
    threading.Thread(target=_worker_loop, name="mail-worker", daemon=True).start()
