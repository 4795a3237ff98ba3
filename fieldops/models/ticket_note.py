from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func

from fieldops.database import Base


class TicketNote(Base):
    """Note attached to a ticket through ``project_id`` (not embedded in the ticket)."""

    __tablename__ = "ticket_notes"

    id = Column(String(36), primary_key=True, index=True)
    project_id = Column(String(36), nullable=False, index=True)

    user_id = Column(String(100))
    user_name = Column(String(255))
    message = Column(Text, nullable=False)

    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now())

    def __repr__(self):
        return f"<TicketNote {self.id} - project {self.project_id}>"
