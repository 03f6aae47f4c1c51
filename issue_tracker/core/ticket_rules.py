from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from .clock import as_utc_naive
from .roles import Caller, normalize_token

if TYPE_CHECKING:
    from ..models.ticket import Ticket


class _ParsableEnum(str, Enum):
    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        key = normalize_token(value or "")
        for member in cls:
            if normalize_token(member.value) == key:
                return member
        raise ValueError(f"Invalid {cls.__name__.removeprefix('Ticket').lower()}: {value}")


class TicketStatus(_ParsableEnum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    CLOSED = "Closed"


class TicketPriority(_ParsableEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TicketType(_ParsableEnum):
    SOFTWARE = "Software"
    HARDWARE = "Hardware"


STATUS_RANK = {TicketStatus.OPEN: 0, TicketStatus.IN_PROGRESS: 1, TicketStatus.CLOSED: 2}
PRIORITY_RANK = {TicketPriority.LOW: 0, TicketPriority.MEDIUM: 1, TicketPriority.HIGH: 2}


def clamp_duration(value: timedelta) -> timedelta:
    return value if value > timedelta(0) else timedelta(0)


def apply_status_change(ticket: Ticket, new_status: TicketStatus, now: datetime) -> None:
    """Set ``ticket.status`` and keep ``resolved_at``/``resolution_time`` in step with it.

    Closing stamps both KPI fields, reopening clears both, any other move leaves
    them alone. ``updated_at`` is the caller's responsibility.
    """
    old_status = TicketStatus.parse(ticket.status)
    ticket.status = new_status.value

    if new_status is TicketStatus.CLOSED and old_status is not TicketStatus.CLOSED:
        ticket.resolved_at = now
        ticket.resolution_time = clamp_duration(now - as_utc_naive(ticket.created_at))
    elif new_status is not TicketStatus.CLOSED and old_status is TicketStatus.CLOSED:
        ticket.resolved_at = None
        ticket.resolution_time = None


def claim_if_unassigned(ticket: Ticket, caller: Caller) -> bool:
    """First representative to touch an unassigned ticket becomes its assignee."""
    if caller.is_rep and ticket.assigned_to_user_id is None:
        ticket.assigned_to_user_id = caller.id
        return True
    return False


def resolution_hours(ticket: Ticket) -> float:
    if ticket.resolution_time is not None:
        duration = ticket.resolution_time
    else:
        end = ticket.resolved_at or ticket.updated_at
        duration = as_utc_naive(end) - as_utc_naive(ticket.created_at)
    return clamp_duration(duration).total_seconds() / 3600
