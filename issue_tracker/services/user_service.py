from fastapi import HTTPException
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.roles import Role
from ..core.security import hash_password
from ..models.ticket import Ticket
from ..models.user import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_by_email(session: Session, email: str) -> User | None:
    return session.scalar(select(User).where(User.email == normalize_email(email)))


def ensure_email_free(session: Session, email: str, *, exclude_id: int | None = None) -> None:
    existing = find_by_email(session, email)
    if existing and existing.id != exclude_id:
        raise HTTPException(status_code=409, detail="Email already exists")


def create_user(session: Session, *, name: str, email: str, password: str, role: Role) -> User:
    ensure_email_free(session, email)
    user = User(
        name=name.strip(),
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=role.value,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same address.
        session.rollback()
        raise HTTPException(status_code=409, detail="Email already exists")
    return user


def has_tickets(session: Session, user_id: int) -> bool:
    """True when the user created or is assigned any ticket."""
    stmt = (
        select(Ticket.id)
        .where(or_(Ticket.created_by_user_id == user_id, Ticket.assigned_to_user_id == user_id))
        .limit(1)
    )
    return session.execute(stmt).first() is not None


def list_by_role(session: Session, role: Role) -> list[User]:
    return list(session.scalars(select(User).where(User.role == role.value).order_by(User.id)).all())
