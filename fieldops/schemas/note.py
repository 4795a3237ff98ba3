"""Ticket note schemas."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from fieldops.schemas.ticket import DocumentModel


class NoteCreate(DocumentModel):
    """Schema for adding a note to a ticket."""

    message: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    user_name: Optional[str] = None


class NoteDocument(DocumentModel):
    """Note document keyed to its ticket through ``projectId``."""

    id: str
    project_id: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    message: str
    timestamp: Optional[datetime] = None
