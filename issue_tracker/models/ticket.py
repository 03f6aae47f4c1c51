from datetime import datetime, timedelta

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Text, Integer, DateTime, Interval, ForeignKey

from ..core.clock import utcnow
from .attachment import Attachment
from .user import Base

class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)

    priority: Mapped[str] = mapped_column(String(16), default="Medium", index=True)
    type: Mapped[str] = mapped_column(String(16), default="Software")
    status: Mapped[str] = mapped_column(String(16), default="Open", index=True)

    created_by_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), index=True
    )
    assigned_to_user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # KPI: set when the ticket is closed, cleared when it is reopened
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolution_time: Mapped[timedelta | None] = mapped_column(Interval, nullable=True)

    # Row token for optimistic locking, bumped by SQLAlchemy on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    attachments = relationship(
        Attachment,
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=Attachment.id,
    )

    __mapper_args__ = {"version_id_col": version}
