from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.clock import as_utc_naive, utcnow
from ..core.roles import Role
from ..core.ticket_rules import TicketPriority, TicketStatus, resolution_hours
from ..models.ticket import Ticket
from ..models.user import User

CLOSED = TicketStatus.CLOSED.value
MIN_TREND_DAYS = 1
MAX_TREND_DAYS = 365


@dataclass
class RepresentativePerformance:
    representative_id: int
    representative_name: str
    representative_email: str
    tickets_assigned: int
    tickets_resolved: int
    tickets_closed: int
    resolution_rate: float
    average_resolution_time: float


@dataclass
class TicketTrend:
    date: date
    created: int = 0
    resolved: int = 0


@dataclass
class DashboardStats:
    total_tickets: int
    open_tickets: int
    in_progress_tickets: int
    closed_tickets: int
    high_priority_tickets: int
    total_users: int
    total_representatives: int
    total_admins: int
    recent_tickets: int
    average_resolution_time: float
    ticket_trends: list[TicketTrend] = field(default_factory=list)
    top_performers: list[RepresentativePerformance] = field(default_factory=list)


def _within(stmt, column, from_date: datetime | None, to_date: datetime | None):
    if from_date is not None:
        stmt = stmt.where(column >= as_utc_naive(from_date))
    if to_date is not None:
        stmt = stmt.where(column <= as_utc_naive(to_date))
    return stmt


def _average_hours(tickets: list[Ticket]) -> float:
    if not tickets:
        return 0.0
    return sum(resolution_hours(t) for t in tickets) / len(tickets)


def resolution_rate(resolved: int, assigned: int) -> float:
    return resolved / assigned * 100 if assigned > 0 else 0.0


def representative_kpi(
    session: Session,
    representative_id: int,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    *,
    representative: User | None = None,
) -> RepresentativePerformance:
    """KPI for one representative over tickets created inside the window."""
    rep = representative or session.get(User, representative_id)

    stmt = select(Ticket).where(Ticket.assigned_to_user_id == representative_id)
    stmt = _within(stmt, Ticket.created_at, from_date, to_date)
    tickets = list(session.scalars(stmt).all())
    resolved = [t for t in tickets if t.status == CLOSED]

    return RepresentativePerformance(
        representative_id=representative_id,
        representative_name=rep.name if rep else "Unknown",
        representative_email=rep.email if rep else "",
        tickets_assigned=len(tickets),
        tickets_resolved=len(resolved),
        tickets_closed=len(resolved),
        resolution_rate=resolution_rate(len(resolved), len(tickets)),
        average_resolution_time=_average_hours(resolved),
    )


def all_representatives_kpi(
    session: Session,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> list[RepresentativePerformance]:
    reps = session.scalars(select(User).where(User.role == Role.REP.value).order_by(User.id)).all()
    performance = [
        representative_kpi(session, rep.id, from_date, to_date, representative=rep) for rep in reps
    ]
    # sorted() is stable, so equal rates keep id order.
    return sorted(performance, key=lambda p: p.resolution_rate, reverse=True)


def top_performers(session: Session, limit: int = 10) -> list[RepresentativePerformance]:
    return all_representatives_kpi(session)[:limit]


def average_resolution_time(
    session: Session,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> float:
    stmt = select(Ticket).where(Ticket.status == CLOSED)
    stmt = _within(stmt, Ticket.resolved_at, from_date, to_date)
    return _average_hours(list(session.scalars(stmt).all()))


def total_resolved(
    session: Session,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> int:
    stmt = select(func.count(Ticket.id)).where(Ticket.status == CLOSED)
    stmt = _within(stmt, func.coalesce(Ticket.resolved_at, Ticket.updated_at), from_date, to_date)
    return session.scalar(stmt) or 0


def ticket_trends(session: Session, days: int = 30, *, today: date | None = None) -> list[TicketTrend]:
    """Created/resolved counts per UTC calendar day, oldest first, ending today."""
    if not MIN_TREND_DAYS <= days <= MAX_TREND_DAYS:
        raise ValueError(f"Days must be between {MIN_TREND_DAYS} and {MAX_TREND_DAYS}")
    end = today or utcnow().date()
    start = end - timedelta(days=days - 1)
    start_at = datetime.combine(start, datetime.min.time())
    buckets = {start + timedelta(days=i): TicketTrend(date=start + timedelta(days=i)) for i in range(days)}

    created = session.scalars(select(Ticket.created_at).where(Ticket.created_at >= start_at)).all()
    for created_at in created:
        bucket = buckets.get(as_utc_naive(created_at).date())
        if bucket:
            bucket.created += 1

    resolved = session.scalars(
        select(Ticket.resolved_at).where(Ticket.status == CLOSED).where(Ticket.resolved_at >= start_at)
    ).all()
    for resolved_at in resolved:
        bucket = buckets.get(as_utc_naive(resolved_at).date())
        if bucket:
            bucket.resolved += 1

    return list(buckets.values())


def _count(session: Session, stmt) -> int:
    return session.scalar(stmt) or 0


def dashboard_stats(session: Session, *, now: datetime | None = None) -> DashboardStats:
    now = now or utcnow()
    ticket_count = select(func.count(Ticket.id))
    user_count = select(func.count(User.id))

    return DashboardStats(
        total_tickets=_count(session, ticket_count),
        open_tickets=_count(session, ticket_count.where(Ticket.status == TicketStatus.OPEN.value)),
        in_progress_tickets=_count(
            session, ticket_count.where(Ticket.status == TicketStatus.IN_PROGRESS.value)
        ),
        closed_tickets=_count(session, ticket_count.where(Ticket.status == CLOSED)),
        high_priority_tickets=_count(
            session, ticket_count.where(Ticket.priority == TicketPriority.HIGH.value)
        ),
        total_users=_count(session, user_count),
        total_representatives=_count(session, user_count.where(User.role == Role.REP.value)),
        total_admins=_count(session, user_count.where(User.role == Role.ADMIN.value)),
        recent_tickets=_count(session, ticket_count.where(Ticket.created_at >= now - timedelta(days=7))),
        average_resolution_time=average_resolution_time(session),
        ticket_trends=ticket_trends(session, 30, today=now.date()),
        top_performers=top_performers(session),
    )
