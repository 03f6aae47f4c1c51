"""Ticket event fan-out.

Routers publish a ``TicketEvent`` after their transaction commits. A worker
thread (or ``drain()`` in tests) turns each event into Notification rows for
the affected users and, for resolutions, a queued e-mail to the creator.
Delivery is best-effort: failures are logged and never reach the request.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import queue
import threading

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.roles import Role
from ..core.settings import settings as runtime_settings
from ..db import SessionLocal
from ..models.notification import Notification
from ..models.ticket import Ticket
from ..models.user import User
from .mail_service import MailPayload, SessionFactory, enqueue_mail

logger = logging.getLogger(__name__)

NOTIFIER_POLL_SECONDS = 1.0


class TicketEventType(str, Enum):
    CREATED = "TicketCreated"
    ASSIGNED = "TicketAssigned"
    UPDATED = "TicketUpdated"
    RESOLVED = "TicketResolved"
    COMMENTED = "TicketCommented"


@dataclass(frozen=True)
class TicketEvent:
    type: TicketEventType
    ticket_id: int
    actor_id: int
    assignee_id: int | None = None


_events: queue.Queue[TicketEvent] = queue.Queue()


def publish(event: TicketEvent) -> None:
    # Nothing consumes the queue while the notifier is off.
    if not runtime_settings.NOTIFIER_ENABLED:
        logger.debug("Notifier disabled, dropping %s for ticket %s", event.type.value, event.ticket_id)
        return
    _events.put(event)


def publish_all(events: list[TicketEvent]) -> None:
    for event in events:
        publish(event)


def pending() -> int:
    return _events.qsize()


def clear() -> None:
    while True:
        try:
            _events.get_nowait()
        except queue.Empty:
            return


def _ticket_link(ticket_id: int) -> str:
    return f"{settings.app_base_url.rstrip('/')}/tickets/{ticket_id}"


def _message(event: TicketEvent, ticket: Ticket) -> str:
    title = ticket.title
    if event.type is TicketEventType.CREATED:
        text = f"New ticket '{title}' has been created"
    elif event.type is TicketEventType.ASSIGNED:
        text = f"You have been assigned to ticket '{title}'"
    elif event.type is TicketEventType.RESOLVED:
        text = f"Your ticket '{title}' has been closed"
    elif event.type is TicketEventType.COMMENTED:
        text = f"A comment has been added to your ticket '{title}'"
    else:
        text = f"Your ticket '{title}' has been updated"
    return text[:500]


def _recipients(session: Session, event: TicketEvent, ticket: Ticket) -> list[int]:
    if event.type is TicketEventType.CREATED:
        ids = list(session.scalars(select(User.id).where(User.role == Role.ADMIN.value).order_by(User.id)))
    elif event.type is TicketEventType.ASSIGNED:
        ids = [event.assignee_id] if event.assignee_id is not None else []
    else:
        ids = [ticket.created_by_user_id]
    return [uid for uid in dict.fromkeys(ids) if uid != event.actor_id]


def _queue_resolution_mail(session: Session, ticket: Ticket, session_factory: SessionFactory) -> None:
    creator = session.get(User, ticket.created_by_user_id)
    if not creator or not creator.email:
        return
    resolved_at = ticket.resolved_at.isoformat() if ticket.resolved_at else "-"
    body = "\n".join(
        [
            f"Hello {creator.name},",
            "",
            f"Your ticket #{ticket.id} '{ticket.title}' has been closed.",
            f"- Resolved at (UTC): {resolved_at}",
            f"- Resolution notes: {ticket.resolution_notes or '-'}",
            "",
            _ticket_link(ticket.id),
        ]
    )
    enqueue_mail(
        MailPayload(
            event_key=f"ticket_resolved:{ticket.id}:{creator.id}:{resolved_at}",
            event_type=TicketEventType.RESOLVED.value,
            subject=f"[Issue Tracker] Ticket #{ticket.id} closed",
            body_text=body,
            recipient_email=creator.email,
            recipient_user_id=creator.id,
            ticket_id=ticket.id,
        ),
        session_factory=session_factory,
    )


def handle_event(event: TicketEvent, session_factory: SessionFactory = SessionLocal) -> int:
    """Write Notification rows for one event. Returns how many were written."""
    with session_factory() as session:
        ticket = session.get(Ticket, event.ticket_id)
        if ticket is None:
            logger.info("Ticket %s gone before %s was delivered", event.ticket_id, event.type.value)
            return 0

        recipients = _recipients(session, event, ticket)
        message = _message(event, ticket)
        for user_id in recipients:
            session.add(
                Notification(user_id=user_id, ticket_id=ticket.id, type=event.type.value, message=message)
            )
        session.commit()

        if event.type is TicketEventType.RESOLVED and ticket.created_by_user_id != event.actor_id:
            try:
                _queue_resolution_mail(session, ticket, session_factory)
            except Exception:
                logger.exception("Failed to queue resolution mail for ticket %s", ticket.id)
        return len(recipients)


def drain(session_factory: SessionFactory = SessionLocal) -> int:
    """Deliver every queued event synchronously."""
    delivered = 0
    while True:
        try:
            event = _events.get_nowait()
        except queue.Empty:
            return delivered
        try:
            delivered += handle_event(event, session_factory)
        except Exception:
            logger.exception("Notification delivery failed: %s", event)
        finally:
            _events.task_done()


def _worker_loop() -> None:
    while True:
        try:
            event = _events.get(timeout=NOTIFIER_POLL_SECONDS)
        except queue.Empty:
            continue
        try:
            handle_event(event)
        except Exception:
            logger.exception("Notification delivery failed: %s", event)
        finally:
            _events.task_done()


def start_notifier_thread() -> None:
    t = threading.Thread(target=_worker_loop, name="ticket-notifier", daemon=True)
    t.start()
    logger.info("Notifier worker started")
