import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.current_user import get_caller, require_roles
from ..core.roles import CAN_MANAGE_USERS, Caller, Role
from ..core.security import hash_password, verify_password
from ..db import get_session
from ..models.user import User
from ..schemas.user import PasswordChangeIn, UserCreateIn, UserOut, UserUpdateIn
from ..services.user_service import (
    create_user,
    ensure_email_free,
    has_tickets,
    list_by_role,
    normalize_email,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["users"])

require_admin = require_roles(*CAN_MANAGE_USERS)


def get_user_or_404(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def assert_self_or_admin(caller: Caller, user_id: int) -> None:
    if not caller.is_admin and caller.id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("", response_model=list[UserOut])
def list_users(
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_admin),
):
    return session.scalars(select(User).order_by(User.id)).all()


@router.post("", response_model=UserOut, status_code=201)
def create(
    payload: UserCreateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_admin),
):
    user = create_user(
        session,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
    )
    logger.info("User %s created with role %s by admin %s", user.id, user.role, caller.id)
    return user


@router.get("/representatives", response_model=list[UserOut])
def list_representatives(
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_roles(Role.REP, Role.ADMIN)),
):
    return list_by_role(session, Role.REP)


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    user = get_user_or_404(session, user_id)
    assert_self_or_admin(caller, user_id)
    return user


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserUpdateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    if payload.id is not None and payload.id != user_id:
        raise HTTPException(status_code=400, detail="User ID mismatch")
    assert_self_or_admin(caller, user_id)
    user = get_user_or_404(session, user_id)

    if payload.role is not None and payload.role.value != user.role:
        if not caller.is_admin:
            raise HTTPException(status_code=403, detail="Only admins can change roles")
        user.role = payload.role.value

    ensure_email_free(session, payload.email, exclude_id=user.id)
    user.name = payload.name.strip()
    user.email = normalize_email(payload.email)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Email already exists")
    return user


@router.put("/{user_id}/password", status_code=204)
def change_password(
    user_id: int,
    payload: PasswordChangeIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    assert_self_or_admin(caller, user_id)
    user = get_user_or_404(session, user_id)

    # Admins resetting someone else's password skip the current-password check.
    if caller.id == user_id:
        if not payload.current_password or not verify_password(payload.current_password, user.password_hash):
            raise HTTPException(status_code=400, detail="Current password is incorrect")

    user.password_hash = hash_password(payload.new_password)
    session.commit()
    logger.info("Password changed for user %s by %s", user_id, caller.id)
    return Response(status_code=204)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_admin),
):
    user = get_user_or_404(session, user_id)
    if has_tickets(session, user_id):
        raise HTTPException(
            status_code=400,
            detail="User has created or assigned tickets and cannot be deleted",
        )
    session.delete(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=400,
            detail="User has created or assigned tickets and cannot be deleted",
        )
    logger.info("User %s deleted by admin %s", user_id, caller.id)
    return Response(status_code=204)
