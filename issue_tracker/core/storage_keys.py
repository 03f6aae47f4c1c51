from __future__ import annotations

import os
from datetime import datetime
from uuid import uuid4

from .clock import utcnow


def _date_path(dt: datetime | None) -> str:
    # Folders are YYYY/MM/DD of the ticket's creation (UTC).
    base = dt or utcnow()
    return base.strftime("%Y/%m/%d")


def _ext_from_filename(filename: str) -> str:
    _, ext = os.path.splitext((filename or "").lower())
    return ext


def ticket_attachment_key(*, ticket_id: int, ticket_created_at: datetime | None, filename: str) -> str:
    date_path = _date_path(ticket_created_at)
    ext = _ext_from_filename(filename)
    return f"tickets/{date_path}/{ticket_id}/attachments/{uuid4().hex}{ext}"
