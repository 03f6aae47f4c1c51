from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


def normalize_token(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


class Role(str, Enum):
    USER = "User"
    REP = "Rep"
    ADMIN = "Admin"

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        if isinstance(value, cls):
            return value
        key = normalize_token(value or "")
        if key in ("representative", "rep", "agent"):
            return cls.REP
        for role in cls:
            if normalize_token(role.value) == key:
                return role
        raise ValueError(f"Invalid role: {value}")


@dataclass(frozen=True)
class Caller:
    """Authenticated identity resolved once per request."""

    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_rep(self) -> bool:
        return self.role is Role.REP


# Capability table per role.
CAN_CREATE_TICKET = {Role.USER, Role.ADMIN}
CAN_ASSIGN_OR_CLOSE = {Role.REP, Role.ADMIN}
CAN_MANAGE_USERS = {Role.ADMIN}
CAN_VIEW_ALL_KPIS = {Role.ADMIN}


def can_view_kpi_of(caller: Caller, representative_id: int) -> bool:
    if caller.role in CAN_VIEW_ALL_KPIS:
        return True
    return caller.is_rep and caller.id == representative_id
