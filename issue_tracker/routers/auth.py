import logging

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

from ..schemas.auth import LoginIn, TokenOut
from ..schemas.user import RegisterIn, UserOut
from ..core.current_user import get_current_user
from ..core.roles import Role
from ..core.security import verify_password, create_access_token
from ..models.user import User
from ..services.user_service import create_user, find_by_email
from ..db import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, session: Session = Depends(get_session)):
    user = find_by_email(session, payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    token = create_access_token(user_id=user.id, name=user.name, email=user.email, role=user.role)
    return TokenOut(token=token)


@router.post("/register", response_model=UserOut, status_code=201)
def register(payload: RegisterIn, session: Session = Depends(get_session)):
    # Self-service sign-up always yields a plain User; elevated roles come from an admin.
    user = create_user(
        session,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=Role.USER,
    )
    logger.info("User %s registered", user.id)
    return user


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user
