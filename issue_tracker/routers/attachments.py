from __future__ import annotations

import logging
from tempfile import SpooledTemporaryFile

import anyio
from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from fastapi.responses import FileResponse, RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core import storage
from ..core.current_user import get_caller
from ..core.roles import Caller
from ..core.settings import settings
from ..core.storage_keys import ticket_attachment_key
from ..core.visibility import assert_ticket_access
from ..db import get_session
from ..models.attachment import Attachment
from ..models.ticket import Ticket
from ..schemas.attachment import AttachmentOut

# Upload goes through the API as multipart so the size cap and type allowlist are enforced here.
#   POST   /ticket/{ticket_id}/attachments
#   GET    /ticket/{ticket_id}/attachments
#   GET    /ticket/attachment/{attachment_id}   (download)
#   DELETE /ticket/attachment/{attachment_id}

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ticket", tags=["attachments"])

ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "application/pdf",
    "text/plain",
}
CHUNK_BYTES = 1024 * 1024


def _base_content_type(value: str | None) -> str:
    return (value or "").split(";", 1)[0].strip().lower()


def load_attachment(session: Session, caller: Caller, attachment_id: int) -> tuple[Attachment, Ticket]:
    att = session.get(Attachment, attachment_id)
    if not att:
        raise HTTPException(status_code=404, detail="Attachment not found")
    ticket = session.get(Ticket, att.ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    assert_ticket_access(caller, ticket)
    return att, ticket


@router.post("/{ticket_id}/attachments", response_model=AttachmentOut, status_code=201)
async def upload_attachment(
    ticket_id: int,
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    """Store the file in the configured backend and register an Attachment row."""
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    assert_ticket_access(caller, ticket, mutate=True)

    content_type = _base_content_type(file.content_type)
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="File type not allowed")
    filename = file.filename or "upload.bin"

    # Spool to disk past 5MB.
    spooled = SpooledTemporaryFile(max_size=5 * 1024 * 1024)
    size = 0
    try:
        while True:
            chunk = await file.read(CHUNK_BYTES)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.MAX_UPLOAD_BYTES:
                raise HTTPException(status_code=413, detail="File too large")
            spooled.write(chunk)
        spooled.seek(0)

        key = ticket_attachment_key(
            ticket_id=ticket.id, ticket_created_at=ticket.created_at, filename=filename
        )
        # boto3 and file IO are blocking
        await anyio.to_thread.run_sync(
            lambda: storage.save(fileobj=spooled, key=key, content_type=content_type)
        )
    finally:
        spooled.close()

    att = Attachment(
        ticket_id=ticket.id,
        file_name=filename,
        stored_key=key,
        content_type=content_type,
        size=size,
        uploaded_by_user_id=caller.id,
    )
    session.add(att)
    session.commit()
    session.refresh(att)
    logger.info("Attachment %s uploaded to ticket %s (%s bytes)", att.id, ticket.id, size)
    return att


@router.get("/{ticket_id}/attachments", response_model=list[AttachmentOut])
def list_attachments(
    ticket_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    assert_ticket_access(caller, ticket)
    stmt = select(Attachment).where(Attachment.ticket_id == ticket_id).order_by(Attachment.id)
    return session.scalars(stmt).all()


@router.get("/attachment/{attachment_id}")
def download_attachment(
    attachment_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    att, _ = load_attachment(session, caller, attachment_id)

    if storage.is_object_backend():
        url = storage.get_presigned_get_url(
            key=att.stored_key, filename=att.file_name, content_type=att.content_type
        )
        return RedirectResponse(url, status_code=307)

    path = storage.local_path(att.stored_key)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Stored file is missing")
    return FileResponse(path, media_type=att.content_type, filename=att.file_name)


@router.delete("/attachment/{attachment_id}", status_code=204)
def delete_attachment(
    attachment_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    att, ticket = load_attachment(session, caller, attachment_id)
    if not (
        caller.is_admin
        or ticket.created_by_user_id == caller.id
        or att.uploaded_by_user_id == caller.id
    ):
        raise HTTPException(status_code=403, detail="Forbidden")

    key = att.stored_key
    session.delete(att)
    session.commit()

    try:
        storage.delete(key=key)
    except Exception:
        logger.exception("Failed to remove stored attachment %s", key)
    return Response(status_code=204)
