"""Upload, report and deletion schemas."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from fieldops.schemas.ticket import DocumentModel

MediaPermissionStatus = Literal["granted", "denied", "undetermined"]


class AssetIn(DocumentModel):
    """Local asset handle picked on the device.

    ``uri`` may be a ``data:`` URI (base64), a file path, or an http(s) URL.
    """

    uri: str = Field(..., min_length=1)
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class PhotoUploadRequest(DocumentModel):
    """Batch of assets to upload and attach to a ticket or one of its rooms."""

    assets: list[AssetIn] = Field(..., min_length=1)
    # Blobs go under <folder>/<ticket id>/; default ticketPhotos, or remediationPhotos for a room
    folder: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_-]+$")
    naming: Literal["uuid", "timestamp"] = "uuid"
    permission: MediaPermissionStatus = "undetermined"
    room: Optional[str] = None


class ReportUploadRequest(DocumentModel):
    """Generated PDF report, base64 encoded."""

    data: str = Field(..., min_length=1)
    kind: Literal["report", "inspection"] = "report"


class DeletionFailureResponse(BaseModel):
    kind: str
    target: str
    error: str


class DeletionReportResponse(BaseModel):
    """Outcome of a cascading ticket deletion."""

    ticket_id: str
    ticket_deleted: bool
    already_absent: bool
    notes_deleted: int
    blobs_deleted: int
    failures: list[DeletionFailureResponse]
    warnings: list[str]
