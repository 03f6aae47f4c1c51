from datetime import datetime, timedelta

from pydantic import Field, field_validator

from ..core.ticket_rules import TicketPriority, TicketStatus, TicketType
from .base import ApiModel


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class TicketCreateIn(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    priority: TicketPriority
    type: TicketType
    created_by_user_id: int | None = None
    assigned_to_user_id: int | None = None
    comment: str | None = None

    @field_validator("title", "description")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v):
        return TicketPriority.parse(v)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return TicketType.parse(v)


class TicketUpdateIn(ApiModel):
    id: int
    version: int
    # Blank or omitted values keep the stored value.
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    priority: TicketPriority | None = None
    type: TicketType | None = None
    status: TicketStatus | None = None
    assigned_to_user_id: int | None = None
    # Present-but-null clears these two.
    comment: str | None = None
    resolution_notes: str | None = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def blank_text(cls, v):
        v = _blank_to_none(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v):
        v = _blank_to_none(v)
        return None if v is None else TicketPriority.parse(v)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        v = _blank_to_none(v)
        return None if v is None else TicketType.parse(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        v = _blank_to_none(v)
        return None if v is None else TicketStatus.parse(v)


class TicketCommentIn(ApiModel):
    comment: str | None = None
    version: int | None = None


class TicketOut(ApiModel):
    id: int
    title: str
    description: str
    priority: str
    type: str
    status: str
    created_by_user_id: int
    created_by_user_email: str | None = None
    assigned_to_user_id: int | None = None
    assigned_to_user_email: str | None = None
    comment: str | None = None
    resolution_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None
    resolution_time: timedelta | None = None
    version: int


class TicketSearchOut(ApiModel):
    tickets: list[TicketOut]
    total_count: int
    page_number: int
    page_size: int
    total_pages: int
