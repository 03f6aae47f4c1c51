from datetime import datetime
import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core import storage
from ..core.clock import utcnow
from ..core.current_user import get_caller, require_roles
from ..core.roles import CAN_CREATE_TICKET, Caller, Role
from ..core.ticket_rules import (
    TicketPriority,
    TicketStatus,
    TicketType,
    apply_status_change,
    claim_if_unassigned,
)
from ..core.visibility import assert_ticket_access
from ..db import get_session
from ..models.ticket import Ticket
from ..models.user import User
from ..schemas.ticket import TicketCommentIn, TicketCreateIn, TicketOut, TicketSearchOut, TicketUpdateIn
from ..services import notifier
from ..services.notifier import TicketEvent, TicketEventType
from ..services.ticket_search import TicketSearchCriteria, list_visible_tickets, search_tickets

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ticket", tags=["tickets"])

ASSIGNABLE_ROLES = {Role.REP.value, Role.ADMIN.value}


def build_user_map(session: Session, ids: set[int]) -> dict[int, User]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    users = session.scalars(select(User).where(User.id.in_(ids))).all()
    return {u.id: u for u in users}


def serialize_ticket(t: Ticket, users: dict[int, User]) -> dict:
    creator = users.get(t.created_by_user_id)
    assignee = users.get(t.assigned_to_user_id) if t.assigned_to_user_id else None
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "priority": t.priority,
        "type": t.type,
        "status": t.status,
        "created_by_user_id": t.created_by_user_id,
        "created_by_user_email": creator.email if creator else None,
        "assigned_to_user_id": t.assigned_to_user_id,
        "assigned_to_user_email": assignee.email if assignee else None,
        "comment": t.comment,
        "resolution_notes": t.resolution_notes,
        "created_at": t.created_at,
        "updated_at": t.updated_at,
        "resolved_at": t.resolved_at,
        "resolution_time": t.resolution_time,
        "version": t.version,
    }


def serialize_tickets(session: Session, tickets: list[Ticket]) -> list[dict]:
    ids: set[int] = set()
    for t in tickets:
        ids.add(t.created_by_user_id)
        ids.add(t.assigned_to_user_id)
    users = build_user_map(session, ids)
    return [serialize_ticket(t, users) for t in tickets]


def get_ticket_or_404(session: Session, ticket_id: int) -> Ticket:
    t = session.get(Ticket, ticket_id)
    if not t:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return t


def check_version(t: Ticket, version: int | None) -> None:
    if version is not None and version != t.version:
        raise HTTPException(
            status_code=409,
            detail="The ticket was modified by someone else. Reload it and try again.",
        )


def resolve_assignee(session: Session, user_id: int) -> User:
    assignee = session.get(User, user_id)
    if not assignee:
        raise HTTPException(status_code=400, detail="Assignee not found")
    if assignee.role not in ASSIGNABLE_ROLES:
        raise HTTPException(status_code=400, detail="Assignee must be a representative or admin")
    return assignee


def _parse_or_400(parser, value: str | None):
    if value is None or not value.strip():
        return None
    try:
        return parser(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("", response_model=list[TicketOut])
def list_tickets(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    return serialize_tickets(session, list_visible_tickets(session, caller))


@router.get("/me", response_model=list[TicketOut])
def list_my_tickets(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    stmt = (
        select(Ticket)
        .where(Ticket.created_by_user_id == caller.id)
        .order_by(desc(Ticket.created_at), desc(Ticket.id))
    )
    return serialize_tickets(session, list(session.scalars(stmt).all()))


@router.get("/assigned", response_model=list[TicketOut])
def list_assigned_tickets(
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_roles(Role.REP, Role.ADMIN)),
):
    stmt = (
        select(Ticket)
        .where(Ticket.assigned_to_user_id == caller.id)
        .order_by(desc(Ticket.created_at), desc(Ticket.id))
    )
    return serialize_tickets(session, list(session.scalars(stmt).all()))


@router.get("/search", response_model=TicketSearchOut)
def search(
    title: str | None = Query(default=None),
    description: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    type: str | None = Query(default=None),
    status: str | None = Query(default=None),
    created_by_user_id: int | None = Query(default=None, alias="createdByUserId"),
    assigned_to_user_id: int | None = Query(default=None, alias="assignedToUserId"),
    created_from: datetime | None = Query(default=None, alias="createdFrom"),
    created_to: datetime | None = Query(default=None, alias="createdTo"),
    updated_from: datetime | None = Query(default=None, alias="updatedFrom"),
    updated_to: datetime | None = Query(default=None, alias="updatedTo"),
    page_number: int = Query(default=1, alias="pageNumber"),
    page_size: int = Query(default=10, alias="pageSize"),
    sort_by: str | None = Query(default="CreatedAt", alias="sortBy"),
    sort_order: str | None = Query(default="desc", alias="sortOrder"),
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    criteria = TicketSearchCriteria(
        title=title,
        description=description,
        priority=_parse_or_400(TicketPriority.parse, priority),
        type=_parse_or_400(TicketType.parse, type),
        status=_parse_or_400(TicketStatus.parse, status),
        created_by_user_id=created_by_user_id,
        assigned_to_user_id=assigned_to_user_id,
        created_from=created_from,
        created_to=created_to,
        updated_from=updated_from,
        updated_to=updated_to,
        page_number=page_number,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    tickets, total = search_tickets(session, caller, criteria)
    size = criteria.effective_page_size
    return {
        "tickets": serialize_tickets(session, tickets),
        "total_count": total,
        "page_number": criteria.effective_page_number,
        "page_size": size,
        "total_pages": math.ceil(total / size),
    }


@router.get("/{ticket_id}", response_model=TicketOut)
def get_ticket(
    ticket_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    t = get_ticket_or_404(session, ticket_id)
    assert_ticket_access(caller, t)
    return serialize_tickets(session, [t])[0]


@router.post("", response_model=TicketOut, status_code=201)
def create_ticket(
    payload: TicketCreateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_roles(*CAN_CREATE_TICKET)),
):
    creator_id = caller.id
    if caller.is_admin and payload.created_by_user_id is not None:
        if not session.get(User, payload.created_by_user_id):
            raise HTTPException(status_code=400, detail="Creator not found")
        creator_id = payload.created_by_user_id

    if payload.assigned_to_user_id is not None:
        if not caller.is_admin:
            raise HTTPException(status_code=403, detail="Only admins can assign tickets")
        resolve_assignee(session, payload.assigned_to_user_id)

    now = utcnow()
    t = Ticket(
        title=payload.title,
        description=payload.description,
        priority=payload.priority.value,
        type=payload.type.value,
        status=TicketStatus.OPEN.value,
        created_by_user_id=creator_id,
        assigned_to_user_id=payload.assigned_to_user_id,
        comment=payload.comment,
        created_at=now,
        updated_at=now,
    )
    session.add(t)
    session.commit()
    logger.info("Ticket %s created by user %s", t.id, caller.id)

    events = [TicketEvent(TicketEventType.CREATED, t.id, caller.id)]
    if t.assigned_to_user_id is not None:
        events.append(TicketEvent(TicketEventType.ASSIGNED, t.id, caller.id, t.assigned_to_user_id))
    notifier.publish_all(events)

    return serialize_tickets(session, [t])[0]


def _reject_user_only_fields(t: Ticket, payload: TicketUpdateIn, fields: set[str]) -> None:
    changes_status = payload.status is not None and payload.status.value != t.status
    changes_assignee = (
        "assigned_to_user_id" in fields and payload.assigned_to_user_id != t.assigned_to_user_id
    )
    changes_comment = "comment" in fields and payload.comment != t.comment
    changes_notes = "resolution_notes" in fields and payload.resolution_notes != t.resolution_notes
    if changes_status or changes_assignee or changes_comment or changes_notes:
        raise HTTPException(
            status_code=403,
            detail="Users may only edit title, description, priority and type",
        )


@router.put("/{ticket_id}", response_model=TicketOut)
def update_ticket(
    ticket_id: int,
    payload: TicketUpdateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    if payload.id != ticket_id:
        raise HTTPException(status_code=400, detail="Ticket ID mismatch")

    t = get_ticket_or_404(session, ticket_id)
    assert_ticket_access(caller, t, mutate=True)
    fields = payload.model_fields_set

    if caller.role is Role.USER:
        _reject_user_only_fields(t, payload, fields)
    check_version(t, payload.version)

    old_status = t.status
    old_assignee = t.assigned_to_user_id

    if "assigned_to_user_id" in fields and payload.assigned_to_user_id != t.assigned_to_user_id:
        target = payload.assigned_to_user_id
        if caller.is_rep and target != caller.id:
            raise HTTPException(status_code=403, detail="Representatives can only assign tickets to themselves")
        if target is not None:
            resolve_assignee(session, target)
        t.assigned_to_user_id = target

    if payload.title is not None:
        t.title = payload.title
    if payload.description is not None:
        t.description = payload.description
    if payload.priority is not None:
        t.priority = payload.priority.value
    if payload.type is not None:
        t.type = payload.type.value
    if "comment" in fields:
        t.comment = payload.comment
    if "resolution_notes" in fields:
        t.resolution_notes = payload.resolution_notes

    claim_if_unassigned(t, caller)

    now = utcnow()
    if payload.status is not None:
        apply_status_change(t, payload.status, now)
    t.updated_at = now
    session.commit()

    events = []
    if t.assigned_to_user_id is not None and t.assigned_to_user_id != old_assignee:
        events.append(TicketEvent(TicketEventType.ASSIGNED, t.id, caller.id, t.assigned_to_user_id))
    if t.status == TicketStatus.CLOSED.value and old_status != TicketStatus.CLOSED.value:
        events.append(TicketEvent(TicketEventType.RESOLVED, t.id, caller.id))
    else:
        events.append(TicketEvent(TicketEventType.UPDATED, t.id, caller.id))
    notifier.publish_all(events)

    return serialize_tickets(session, [t])[0]


@router.put("/{ticket_id}/comment", response_model=TicketOut)
def update_ticket_comment(
    ticket_id: int,
    payload: TicketCommentIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_roles(Role.REP, Role.ADMIN)),
):
    t = get_ticket_or_404(session, ticket_id)
    if not caller.is_admin and t.assigned_to_user_id not in (None, caller.id):
        raise HTTPException(
            status_code=403,
            detail="You can only comment on tickets assigned to you or unassigned tickets",
        )
    check_version(t, payload.version)

    t.comment = payload.comment
    claim_if_unassigned(t, caller)
    t.updated_at = utcnow()
    session.commit()

    notifier.publish(TicketEvent(TicketEventType.COMMENTED, t.id, caller.id))
    return serialize_tickets(session, [t])[0]


@router.delete("/{ticket_id}", status_code=204)
def delete_ticket(
    ticket_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_roles(Role.ADMIN)),
):
    t = get_ticket_or_404(session, ticket_id)
    keys = [a.stored_key for a in t.attachments]
    session.delete(t)
    session.commit()
    logger.info("Ticket %s deleted by admin %s", ticket_id, caller.id)

    for key in keys:
        try:
            storage.delete(key=key)
        except Exception:
            logger.exception("Failed to remove stored attachment %s", key)
    return Response(status_code=204)
