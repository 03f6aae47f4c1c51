"""Per-role ticket visibility.

Admins see everything, users see the tickets they created, representatives see
tickets assigned to them plus the unassigned pool. Mutation rights follow the
same rule; attachments and comments inherit the parent ticket's check.
"""
from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import or_, true
from sqlalchemy.sql.elements import ColumnElement

from ..models.ticket import Ticket
from .roles import Caller, Role


def can_view(caller: Caller, ticket: Ticket) -> bool:
    if caller.role is Role.ADMIN:
        return True
    if caller.role is Role.USER:
        return ticket.created_by_user_id == caller.id
    if caller.role is Role.REP:
        return ticket.assigned_to_user_id is None or ticket.assigned_to_user_id == caller.id
    return False


def can_mutate(caller: Caller, ticket: Ticket) -> bool:
    return can_view(caller, ticket)


def visible_ticket_filter(caller: Caller) -> ColumnElement[bool]:
    if caller.role is Role.ADMIN:
        return true()
    if caller.role is Role.USER:
        return Ticket.created_by_user_id == caller.id
    return or_(Ticket.assigned_to_user_id.is_(None), Ticket.assigned_to_user_id == caller.id)


def assert_ticket_access(caller: Caller, ticket: Ticket, *, mutate: bool = False) -> None:
    allowed = can_mutate(caller, ticket) if mutate else can_view(caller, ticket)
    if not allowed:
        raise HTTPException(status_code=403, detail="Forbidden")
