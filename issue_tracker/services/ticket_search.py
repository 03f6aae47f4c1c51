from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import asc, case, desc, func, select
from sqlalchemy.orm import Session

from ..core.clock import as_utc_naive
from ..core.roles import Caller, normalize_token
from ..core.ticket_rules import (
    PRIORITY_RANK,
    STATUS_RANK,
    TicketPriority,
    TicketStatus,
    TicketType,
)
from ..core.visibility import visible_ticket_filter
from ..models.ticket import Ticket

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

_priority_order = case(
    {p.value: rank for p, rank in PRIORITY_RANK.items()},
    value=Ticket.priority,
    else_=len(PRIORITY_RANK),
)
_status_order = case(
    {s.value: rank for s, rank in STATUS_RANK.items()},
    value=Ticket.status,
    else_=len(STATUS_RANK),
)

SORT_COLUMNS = {
    "createdat": Ticket.created_at,
    "updatedat": Ticket.updated_at,
    "priority": _priority_order,
    "status": _status_order,
}


@dataclass
class TicketSearchCriteria:
    title: str | None = None
    description: str | None = None
    priority: TicketPriority | None = None
    type: TicketType | None = None
    status: TicketStatus | None = None
    created_by_user_id: int | None = None
    assigned_to_user_id: int | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_from: datetime | None = None
    updated_to: datetime | None = None
    page_number: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    sort_by: str | None = "CreatedAt"
    sort_order: str | None = "desc"

    @property
    def effective_page_number(self) -> int:
        return self.page_number if self.page_number >= 1 else 1

    @property
    def effective_page_size(self) -> int:
        if self.page_size < 1:
            return DEFAULT_PAGE_SIZE
        return min(self.page_size, MAX_PAGE_SIZE)


def _filtered(caller: Caller, criteria: TicketSearchCriteria):
    stmt = select(Ticket).where(visible_ticket_filter(caller))

    if criteria.title:
        stmt = stmt.where(Ticket.title.icontains(criteria.title, autoescape=True))
    if criteria.description:
        stmt = stmt.where(Ticket.description.icontains(criteria.description, autoescape=True))
    if criteria.priority is not None:
        stmt = stmt.where(Ticket.priority == criteria.priority.value)
    if criteria.type is not None:
        stmt = stmt.where(Ticket.type == criteria.type.value)
    if criteria.status is not None:
        stmt = stmt.where(Ticket.status == criteria.status.value)
    if criteria.created_by_user_id is not None:
        stmt = stmt.where(Ticket.created_by_user_id == criteria.created_by_user_id)
    if criteria.assigned_to_user_id is not None:
        stmt = stmt.where(Ticket.assigned_to_user_id == criteria.assigned_to_user_id)
    if criteria.created_from is not None:
        stmt = stmt.where(Ticket.created_at >= as_utc_naive(criteria.created_from))
    if criteria.created_to is not None:
        stmt = stmt.where(Ticket.created_at <= as_utc_naive(criteria.created_to))
    if criteria.updated_from is not None:
        stmt = stmt.where(Ticket.updated_at >= as_utc_naive(criteria.updated_from))
    if criteria.updated_to is not None:
        stmt = stmt.where(Ticket.updated_at <= as_utc_naive(criteria.updated_to))
    return stmt


def search_tickets(
    session: Session, caller: Caller, criteria: TicketSearchCriteria
) -> tuple[list[Ticket], int]:
    """Return one page of tickets visible to ``caller`` plus the count of the whole filtered set."""
    stmt = _filtered(caller, criteria)
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0

    sort_column = SORT_COLUMNS.get(normalize_token(criteria.sort_by or ""), Ticket.created_at)
    direction = asc if (criteria.sort_order or "").strip().lower() == "asc" else desc
    stmt = stmt.order_by(direction(sort_column), direction(Ticket.id))

    page_size = criteria.effective_page_size
    offset = (criteria.effective_page_number - 1) * page_size
    if offset >= total:
        return [], total
    tickets = list(session.scalars(stmt.offset(offset).limit(page_size)).all())
    return tickets, total


def list_visible_tickets(session: Session, caller: Caller) -> list[Ticket]:
    stmt = (
        select(Ticket)
        .where(visible_ticket_filter(caller))
        .order_by(desc(Ticket.created_at), desc(Ticket.id))
    )
    return list(session.scalars(stmt).all())
