"""Ticket model: the root document for one job site."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Text, Boolean, Integer, JSON
from sqlalchemy.sql import func

from fieldops.database import Base


class Ticket(Base):
    """Ticket/project document.

    Photos and remediation rooms are stored nested (JSON) exactly as the mobile
    client writes them; they have no rows of their own.
    """

    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, index=True)
    project_id = Column(String(36), index=True)  # echoes id
    ticket_number = Column(String(20))
    # "tickets" for the current flow, "projects" for the legacy creation flow
    source_collection = Column(String(20), nullable=False, default="tickets")

    # Address
    street = Column(String(255), default="")
    apt = Column(String(50), default="")
    city = Column(String(100), default="")
    state = Column(String(50), default="")
    zip = Column(String(20), default="")
    address = Column(String(500), default="")
    date = Column(String(50), default="")
    start_date = Column(String(50))
    start_time = Column(String(50))
    end_time = Column(String(50))

    # Builder / contact
    customer = Column(String(255), default="")
    customer_name = Column(String(255), default="")
    customer_number = Column(String(50), default="")
    customer_email = Column(String(255), default="")
    customer_id = Column(String(100), default="")
    contact_number = Column(String(50), default="")
    home_owner_name = Column(String(255), default="")
    home_owner_number = Column(String(50), default="")
    inspector_name = Column(String(255), default="")

    # Job
    reason = Column(Text, default="")
    job_type = Column(String(50), default="inspection")
    type_of_job = Column(String(50), default="inspection")
    hours = Column(String(20), default="")
    recommended_actions = Column(Text, default="")
    message_count = Column(Integer, nullable=False, default=0)

    # Status flags (independent, combinations allowed)
    on_site = Column(Boolean, nullable=False, default=False)
    inspection_complete = Column(Boolean, nullable=False, default=False)
    remediation_required = Column(Boolean, nullable=False, default=False)
    remediation_status = Column(String(30), default="notStarted")
    equipment_on_site = Column(Boolean, nullable=False, default=False)
    site_complete = Column(Boolean, nullable=False, default=False)
    measurements_required = Column(Boolean, nullable=False, default=False)

    # Evidence
    photos = Column(JSON, nullable=False, default=list)
    remediation_data = Column(JSON, nullable=True)
    pdf_url = Column(Text, nullable=True)
    pdf_download_url = Column(Text, nullable=True)

    # Timestamps
    # Microsecond precision keeps creation order stable on SQLite
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Ticket {self.id} - {self.ticket_number}>"
