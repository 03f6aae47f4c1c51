from datetime import datetime

from .base import ApiModel

class AttachmentOut(ApiModel):
    id: int
    ticket_id: int
    file_name: str
    content_type: str
    size: int
    uploaded_by_user_id: int | None = None
    uploaded_at: datetime | None = None
