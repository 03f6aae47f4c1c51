from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import desc, func, select, update
from sqlalchemy.orm import Session

from ..db import get_session
from ..core.current_user import get_caller
from ..core.roles import Caller
from ..models.notification import Notification
from ..models.ticket import Ticket
from ..schemas.notification import NotificationOut, UnreadCountOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_own_notification(session: Session, caller: Caller, notification_id: int) -> Notification:
    n = session.get(Notification, notification_id)
    # Someone else's notification is reported as missing.
    if not n or n.user_id != caller.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    return n


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int = Query(default=50, ge=1, le=200),
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    stmt = (
        select(Notification, Ticket.title)
        .outerjoin(Ticket, Notification.ticket_id == Ticket.id)
        .where(Notification.user_id == caller.id)
        .order_by(desc(Notification.created_at), desc(Notification.id))
        .limit(limit)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))

    items: list[NotificationOut] = []
    for n, ticket_title in session.execute(stmt).all():
        items.append(
            NotificationOut(
                id=n.id,
                user_id=n.user_id,
                ticket_id=n.ticket_id,
                ticket_title=ticket_title,
                type=n.type,
                message=n.message,
                is_read=n.is_read,
                created_at=n.created_at,
            )
        )
    return items


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    stmt = (
        select(func.count(Notification.id))
        .where(Notification.user_id == caller.id)
        .where(Notification.is_read.is_(False))
    )
    return UnreadCountOut(unread_count=session.scalar(stmt) or 0)


@router.put("/read-all", status_code=204)
def mark_all_read(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    session.execute(
        update(Notification)
        .where(Notification.user_id == caller.id)
        .where(Notification.is_read.is_(False))
        .values(is_read=True)
    )
    session.commit()
    return Response(status_code=204)


@router.put("/{notification_id}/read", status_code=204)
def mark_read(
    notification_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    n = get_own_notification(session, caller, notification_id)
    n.is_read = True
    session.commit()
    return Response(status_code=204)


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    n = get_own_notification(session, caller, notification_id)
    session.delete(n)
    session.commit()
    return Response(status_code=204)
