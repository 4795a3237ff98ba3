"""
Ticket lifecycle: creation, field and status updates, notes, photos and
report files.

Updates are applied to the ticket mirror first and then written to the
document store (``OptimisticSync``); a failed write rolls the mirror back.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from fieldops.exceptions import NotFoundError, ValidationError
from fieldops.schemas.note import NoteCreate, NoteDocument
from fieldops.schemas.ticket import (
    PhotoReference,
    RemediationData,
    TicketCreate,
    TicketDocument,
    TicketStatusUpdate,
    TicketUpdate,
    new_ticket,
)
from fieldops.services.blob_paths import BlobPathError, owner_folder, resolve_storage_path
from fieldops.services.blob_store import BlobNotFoundError, BlobStore, BlobStoreError
from fieldops.services.mirror_store import OptimisticSync, TicketMirror
from fieldops.services.ticket_repository import LEGACY_PROJECTS, TICKETS, TicketRepository
from fieldops.services.upload_service import (
    FilenameStrategy,
    LocalAsset,
    UploadPipeline,
    ensure_media_permission,
)

logger = logging.getLogger(__name__)

REQUIRED_TICKET_FIELDS = ("street", "city", "state", "zip", "customer")
TICKET_PHOTO_FOLDER = "ticketPhotos"
ROOM_PHOTO_FOLDER = "remediationPhotos"


def format_phone_number(number: Optional[str]) -> str:
    """``(xxx) xxx-xxxx`` for ten-digit numbers; other input is returned as digits."""
    digits = re.sub(r"\D", "", number or "")
    match = re.fullmatch(r"(\d{3})(\d{3})(\d{4})", digits)
    if not match:
        return digits
    return "({}) {}-{}".format(*match.groups())


def compose_address(street: str, apt: Optional[str], city: str, state: str, zip_code: str) -> str:
    unit = f" Apt {apt}" if apt else ""
    return f"{street}{unit}, {city}, {state} {zip_code}"


class TicketService:
    """Ticket documents and notes, mirrored locally."""

    def __init__(
        self,
        repository: TicketRepository,
        mirror: TicketMirror,
        default_inspector_name: str = "",
    ):
        self.repository = repository
        self.mirror = mirror
        self.sync = OptimisticSync(mirror)
        self.default_inspector_name = default_inspector_name

    async def get_ticket(self, ticket_id: str) -> TicketDocument:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    async def list_tickets(self, source_collection: Optional[str] = None) -> List[TicketDocument]:
        return await self.repository.list_tickets(source_collection)

    async def create_ticket(
        self,
        data: Union[TicketCreate, Mapping[str, Any]],
        user: Optional[Mapping[str, Any]] = None,
        source_collection: str = TICKETS,
    ) -> TicketDocument:
        """Create a ticket from the canonical template, plus an optional first note."""
        if not isinstance(data, TicketCreate):
            data = TicketCreate.model_validate(data)

        missing = [name for name in REQUIRED_TICKET_FIELDS if not getattr(data, name).strip()]
        if missing:
            raise ValidationError(
                "Please fill in all required fields.",
                errors=[{"field": name, "message": "Field required"} for name in missing],
            )

        template = new_ticket(**data.model_dump(exclude={"start_date", "start_time", "end_time", "note"}))
        values = template.model_dump(exclude={"photos"})
        values.update(
            photos=[photo.to_document() for photo in template.photos],
            address=compose_address(data.street, data.apt, data.city, data.state, data.zip),
            contact_number=format_phone_number(data.customer_number),
            inspector_name=data.inspector_name or self.default_inspector_name,
            start_date=data.start_date,
            start_time=data.start_time,
            end_time=data.end_time,
        )

        ticket = await self.repository.create_ticket(values, source_collection=source_collection)
        self.mirror.add(ticket.to_document())

        if data.note and data.note.strip():
            user = user or {}
            await self.add_note(
                ticket.id,
                NoteCreate(
                    message=data.note.strip(),
                    user_id=user.get("uid") or user.get("id"),
                    user_name=user.get("displayName") or user.get("name"),
                ),
            )
            ticket = await self.get_ticket(ticket.id)
        return ticket

    async def create_project(
        self,
        data: Union[TicketCreate, Mapping[str, Any]],
        user: Optional[Mapping[str, Any]] = None,
    ) -> TicketDocument:
        """Older project creation flow; lands in the tickets collection."""
        return await self.create_ticket(data, user=user, source_collection=LEGACY_PROJECTS)

    async def update_fields(self, ticket_id: str, changes: Union[TicketUpdate, Mapping[str, Any]]) -> TicketDocument:
        """Partial update, applied optimistically to the mirror."""
        if not isinstance(changes, TicketUpdate):
            changes = TicketUpdate.model_validate(changes)

        async def write() -> Optional[Dict[str, Any]]:
            ticket = await self.repository.update_ticket(ticket_id, changes)
            return ticket.to_document() if ticket else None

        document = await self.sync.patch(ticket_id, changes.to_document(exclude_unset=True), write)
        if document is None:
            raise NotFoundError("Ticket", ticket_id)
        return TicketDocument.model_validate(document)

    async def set_status(self, ticket_id: str, status: TicketStatusUpdate) -> TicketDocument:
        return await self.update_fields(ticket_id, status.to_update())

    async def save_remediation(self, ticket_id: str, remediation: RemediationData) -> TicketDocument:
        """Replace the ticket's rooms and measurements wholesale."""
        local = TicketUpdate(remediation_data=remediation).to_document(exclude_unset=True)

        async def write() -> Optional[Dict[str, Any]]:
            ticket = await self.repository.replace_remediation(ticket_id, remediation)
            return ticket.to_document() if ticket else None

        document = await self.sync.patch(ticket_id, local, write)
        if document is None:
            raise NotFoundError("Ticket", ticket_id)
        return TicketDocument.model_validate(document)

    async def add_note(self, ticket_id: str, note: NoteCreate) -> NoteDocument:
        await self.get_ticket(ticket_id)
        document = await self.repository.add_note(ticket_id, note)
        logger.debug(f"Note {document.id} added to ticket {ticket_id}")
        return document

    async def list_notes(self, ticket_id: str) -> List[NoteDocument]:
        await self.get_ticket(ticket_id)
        return await self.repository.list_notes(ticket_id)


class TicketPhotoService:
    """Photos and report files attached to tickets."""

    def __init__(self, tickets: TicketService, pipeline: UploadPipeline, blob_store: BlobStore):
        self.tickets = tickets
        self.pipeline = pipeline
        self.blob_store = blob_store

    async def attach_photos(
        self,
        ticket_id: str,
        assets: Sequence[LocalAsset],
        folder: Optional[str] = None,
        permission: str = "undetermined",
        room: Optional[str] = None,
        strategy: FilenameStrategy = FilenameStrategy.UUID,
    ) -> TicketDocument:
        """Upload ``assets`` as one batch and append them to the ticket or a room.

        Blobs land under ``<folder>/<ticket id>/``; ``folder`` defaults to
        ``ticketPhotos`` for the ticket and ``remediationPhotos`` for a room.
        """
        ensure_media_permission(permission)
        ticket = await self.tickets.get_ticket(ticket_id)

        remediation = ticket.remediation_data.model_copy(deep=True) if ticket.remediation_data else None
        target_room = None
        if room is not None:
            rooms = remediation.rooms if remediation else []
            target_room = next((r for r in rooms if r.name == room), None)
            if target_room is None:
                raise NotFoundError("Room", room)

        base = folder or (ROOM_PHOTO_FOLDER if room is not None else TICKET_PHOTO_FOLDER)
        references = await self.pipeline.upload_assets(assets, owner_folder(base, ticket.id), strategy)

        if target_room is not None:
            target_room.photos = [*target_room.photos, *references]
            changes = TicketUpdate(remediation_data=remediation)
        else:
            changes = TicketUpdate(photos=[*ticket.photos, *references])

        try:
            return await self.tickets.update_fields(ticket_id, changes)
        except Exception:
            await self.pipeline.discard(references)
            raise

    async def detach_photo(self, ticket_id: str, storage_path: str) -> TicketDocument:
        """Remove one photo reference from the ticket, then delete its blob."""
        ticket = await self.tickets.get_ticket(ticket_id)

        def keep(reference: PhotoReference) -> bool:
            try:
                return resolve_storage_path(reference) != storage_path
            except BlobPathError:
                return True

        photos = [ref for ref in ticket.photos if keep(ref)]
        remediation = ticket.remediation_data.model_copy(deep=True) if ticket.remediation_data else None
        removed = len(photos) < len(ticket.photos)
        if remediation:
            for room in remediation.rooms:
                remaining = [ref for ref in room.photos if keep(ref)]
                removed = removed or len(remaining) < len(room.photos)
                room.photos = remaining
        if not removed:
            raise NotFoundError("Photo", storage_path)

        changes = TicketUpdate(photos=photos)
        if remediation:
            changes = TicketUpdate(photos=photos, remediation_data=remediation)
        updated = await self.tickets.update_fields(ticket_id, changes)

        try:
            await self.blob_store.delete(storage_path)
        except BlobNotFoundError:
            logger.debug(f"Blob {storage_path} was already gone")
        except BlobStoreError as e:
            logger.warning(f"Photo {storage_path} detached from ticket {ticket_id} but blob delete failed: {e}")
        return updated

    async def attach_report(self, ticket_id: str, pdf: bytes, kind: str = "report") -> TicketDocument:
        """Upload a generated PDF and record it on the ticket.

        Ticket reports are stored under ``reports/`` and recorded as ``pdfUrl``;
        inspection reports go under ``inspection_reports/`` as ``pdfDownloadURL``.
        """
        ticket = await self.tickets.get_ticket(ticket_id)
        if kind == "inspection":
            reference = await self.pipeline.upload_inspection_report(ticket.address or ticket.street, pdf)
            changes = TicketUpdate(pdf_download_url=reference.download_url)
        else:
            reference = await self.pipeline.upload_report_pdf(ticket.to_document(), pdf)
            changes = TicketUpdate(pdf_url=reference.download_url)
        logger.info(f"Report for ticket {ticket_id} stored at {reference.storage_path}")
        return await self.tickets.update_fields(ticket_id, changes)
