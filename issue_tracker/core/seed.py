import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.user import User
from .roles import Role
from .security import hash_password
from .settings import settings

logger = logging.getLogger(__name__)


def seed_admin(session: Session) -> User:
    """
    Dev bootstrap admin.
    - If the e-mail already exists the account is promoted to Admin; its password is left alone.
    - Otherwise a new Admin is created from ADMIN_EMAIL / ADMIN_PASSWORD.
    """
    email = settings.ADMIN_EMAIL.strip().lower()
    existing = session.scalar(select(User).where(User.email == email))
    if existing:
        if existing.role != Role.ADMIN.value:
            existing.role = Role.ADMIN.value
            session.commit()
        return existing

    admin = User(
        name=settings.ADMIN_NAME,
        email=email,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        role=Role.ADMIN.value,
    )
    session.add(admin)
    session.commit()
    logger.info("Seeded admin account %s", email)
    return admin
