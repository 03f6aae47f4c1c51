from datetime import timedelta

import pytest

from issue_tracker.core.config import settings
from issue_tracker.models.mail_log import MailLog
from issue_tracker.services import mail_service, notifier
from issue_tracker.services.mail_service import MailPayload, enqueue_mail, process_pending_mail
from issue_tracker.services.notifier import TicketEvent, TicketEventType


@pytest.fixture()
def smtp(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.test")
    monkeypatch.setattr(settings, "smtp_from", "noreply@example.com")


def payload(key="ticket_resolved:1", email="Uma@Example.com"):
    return MailPayload(
        event_key=key,
        event_type="TicketResolved",
        subject="Ticket closed",
        body_text="done",
        recipient_email=email,
    )


def test_without_smtp_nothing_is_queued(db, session_factory):
    assert enqueue_mail(payload(), session_factory) is False
    assert db.query(MailLog).count() == 0
    assert process_pending_mail(session_factory, send=lambda p: None) == 0


def test_queue_and_send(smtp, db, session_factory):
    sent = []
    assert enqueue_mail(payload(), session_factory) is True
    assert enqueue_mail(payload(), session_factory) is False  # same event key

    assert process_pending_mail(session_factory, send=sent.append) == 1
    assert [p.recipient_email for p in sent] == ["Uma@example.com"]
    log = db.query(MailLog).one()
    assert (log.status, log.attempts) == ("sent", 1)


def test_invalid_address_is_logged_as_skipped(smtp, db, session_factory):
    assert enqueue_mail(payload(email="not-an-address"), session_factory) is False
    log = db.query(MailLog).one()
    assert log.status == "skipped"
    assert log.error_message == "Invalid recipient address"


def test_cooldown_suppresses_repeat(smtp, db, session_factory):
    enqueue_mail(payload("first"), session_factory)
    process_pending_mail(session_factory, send=lambda p: None)
    assert enqueue_mail(payload("second"), session_factory) is False
    second = db.query(MailLog).filter_by(event_key="second").one()
    assert second.error_message == "Suppressed by cooldown"


def test_failure_backs_off(smtp, db, session_factory):
    def boom(p):
        raise OSError("connection refused")

    enqueue_mail(payload(), session_factory)
    assert process_pending_mail(session_factory, send=boom) == 1
    log = db.query(MailLog).one()
    assert log.status == "failed"
    assert log.error_message == "connection refused"
    assert log.next_attempt_at - log.last_attempt_at == timedelta(seconds=60)
    # Not due yet.
    assert process_pending_mail(session_factory, send=boom) == 0


def test_backoff_steps():
    assert [mail_service._next_backoff(n) for n in (1, 2, 3, 4)] == [60, 300, 900, 900]


def test_resolution_queues_mail_for_creator(smtp, notifier_enabled, db, session_factory, user, rep, make_ticket):
    t = make_ticket(user, status="Closed", assigned_to_user_id=rep.id, resolution_notes="Replaced cable")
    notifier.publish(TicketEvent(TicketEventType.RESOLVED, t.id, rep.id))
    assert notifier.drain(session_factory) == 1
    log = db.query(MailLog).one()
    assert log.recipient_email == user.email
    assert log.ticket_id == t.id
    assert "Replaced cable" in log.body_text
