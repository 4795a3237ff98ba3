"""Ticket photos and report files API."""
from fastapi import APIRouter, Query
import base64
import binascii
import logging

from fieldops.api.deps import Services
from fieldops.exceptions import ErrorCode, ExternalServiceError, PermissionDeniedError, ValidationError
from fieldops.schemas.upload import PhotoUploadRequest, ReportUploadRequest
from fieldops.services.blob_store import BlobStoreError
from fieldops.services.upload_service import (
    FilenameStrategy,
    LocalAsset,
    MediaPermissionError,
    UploadBatchError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{ticket_id}/photos")
async def upload_photos(ticket_id: str, upload: PhotoUploadRequest, services: Services):
    """Upload a batch of photos and attach them to the ticket or one of its rooms.

    The batch is all-or-nothing: if any asset fails, none are attached.
    """
    assets = [LocalAsset(uri=a.uri, file_name=a.file_name, mime_type=a.mime_type) for a in upload.assets]
    try:
        ticket = await services.photos.attach_photos(
            ticket_id,
            assets,
            folder=upload.folder,
            permission=upload.permission,
            room=upload.room,
            strategy=FilenameStrategy(upload.naming),
        )
    except MediaPermissionError as e:
        raise PermissionDeniedError(str(e))
    except UploadBatchError as e:
        logger.warning(f"Photo upload for ticket {ticket_id} failed: {e}")
        raise ExternalServiceError("Blob store", str(e), ErrorCode.BLOB_STORE_ERROR)
    return ticket.to_document()


@router.delete("/{ticket_id}/photos")
async def delete_photo(
    ticket_id: str,
    services: Services,
    storage_path: str = Query(..., min_length=1),
):
    """Detach one photo from the ticket and delete its blob."""
    ticket = await services.photos.detach_photo(ticket_id, storage_path)
    return ticket.to_document()


@router.post("/{ticket_id}/report")
async def upload_report(ticket_id: str, report: ReportUploadRequest, services: Services):
    """Store a generated PDF report and record its URL on the ticket."""
    try:
        pdf = base64.b64decode(report.data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Report data is not valid base64")

    try:
        ticket = await services.photos.attach_report(ticket_id, pdf, kind=report.kind)
    except BlobStoreError as e:
        raise ExternalServiceError("Blob store", f"Failed to upload report: {e}", ErrorCode.BLOB_STORE_ERROR)
    return ticket.to_document()
