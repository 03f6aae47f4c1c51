from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from ..db import get_session
from ..models.user import User
from .roles import Caller, Role
from .security import decode_token

bearer = HTTPBearer(auto_error=False)

_CHALLENGE = {"WWW-Authenticate": "Bearer"}

def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    session: Session = Depends(get_session),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated", headers=_CHALLENGE)

    try:
        payload = decode_token(creds.credentials)
        user_id = int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token", headers=_CHALLENGE)

    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found", headers=_CHALLENGE)
    return user


def get_caller(user: User = Depends(get_current_user)) -> Caller:
    # The stored role wins over the token claim so role changes apply immediately.
    return Caller(id=user.id, role=Role.parse(user.role))


def require_roles(*roles: Role):
    allowed = set(roles)

    def _dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return caller

    return _dependency
