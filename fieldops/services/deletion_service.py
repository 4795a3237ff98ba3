"""
Cascading ticket deletion.

Removes a ticket together with its notes, every photo blob reachable from it
(top-level and per room) and its report file. Order of operations:

1. Delete the ticket's notes concurrently.
2. Load the ticket; an absent ticket is already deleted.
3. Delete every referenced blob concurrently.
4. Wait for notes and blobs to settle, whatever the individual outcomes.
5. Delete the ticket document.
6. Drop the ticket from the local mirror.

Individual note or blob failures are collected into the ``DeletionReport`` as
warnings; they never stop the ticket document from being deleted.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from fieldops.schemas.ticket import TicketDocument
from fieldops.services.blob_paths import BlobPathError, resolve_storage_path
from fieldops.services.blob_store import BlobNotFoundError, BlobStore
from fieldops.services.mirror_store import MirrorStore
from fieldops.services.ticket_repository import TicketRepository

logger = logging.getLogger(__name__)

DELETE_CONFIRMATION_MESSAGE = (
    "Are you sure you want to delete this ticket and all associated notes, photos, and data?"
)


@dataclass(frozen=True)
class DeletionFailure:
    """One owned resource that could not be removed."""

    kind: str  # "note", "blob", "reference", "notes-query"
    target: str
    error: str

    @property
    def message(self) -> str:
        return f"Could not delete {self.kind} {self.target}: {self.error}"


@dataclass
class DeletionReport:
    ticket_id: str
    ticket_deleted: bool = False
    already_absent: bool = False
    notes_deleted: int = 0
    blobs_deleted: int = 0
    deleted_paths: List[str] = field(default_factory=list)
    failures: List[DeletionFailure] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [failure.message for failure in self.failures]

    @property
    def clean(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class DeletionPrompt:
    """Two-choice confirmation shown before any deletion starts."""

    ticket_id: str
    title: str = "Delete Ticket"
    message: str = DELETE_CONFIRMATION_MESSAGE
    confirm_label: str = "Delete"
    cancel_label: str = "Cancel"


ConfirmCallback = Callable[[DeletionPrompt], Awaitable[bool]]


class TicketDeletionService:
    """Deletes tickets and everything they own."""

    def __init__(
        self,
        repository: TicketRepository,
        blob_store: BlobStore,
        mirror: Optional[MirrorStore] = None,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.mirror = mirror

    async def request_deletion(self, ticket_id: str, confirm: ConfirmCallback) -> Optional[DeletionReport]:
        """Ask for confirmation, then delete.

        Returns None when the user cancels; nothing is touched in that case.
        """
        prompt = DeletionPrompt(ticket_id=ticket_id)
        if not await confirm(prompt):
            logger.info(f"Deletion of ticket {ticket_id} cancelled")
            return None
        return await self.delete_ticket(ticket_id)

    async def delete_ticket(self, ticket_id: str) -> DeletionReport:
        report = DeletionReport(ticket_id=ticket_id)

        notes = asyncio.ensure_future(self._delete_notes(ticket_id, report))
        try:
            ticket = await self.repository.get_ticket(ticket_id)
        except Exception:
            await notes
            raise

        if ticket is None:
            await notes
            report.already_absent = True
            self._drop_from_mirror(ticket_id)
            logger.info(f"Ticket {ticket_id} already deleted")
            return report

        paths = self._blob_paths(ticket, report)
        await asyncio.gather(notes, self._delete_blobs(ticket_id, paths, report))

        report.ticket_deleted = await self.repository.delete_ticket(ticket_id)
        if not report.ticket_deleted:
            # Removed concurrently by another client
            report.already_absent = True
        self._drop_from_mirror(ticket_id)

        if report.failures:
            logger.warning(
                f"Ticket {ticket_id} deleted with {len(report.failures)} warning(s): "
                f"{'; '.join(report.warnings)}"
            )
        else:
            logger.info(
                f"Ticket {ticket_id} deleted "
                f"(notes={report.notes_deleted}, blobs={report.blobs_deleted})"
            )
        return report

    def _drop_from_mirror(self, ticket_id: str) -> None:
        if self.mirror is not None:
            self.mirror.remove(ticket_id)

    async def _delete_notes(self, ticket_id: str, report: DeletionReport) -> None:
        try:
            notes = await self.repository.list_notes(ticket_id)
        except Exception as e:
            logger.warning(f"Could not query notes of ticket {ticket_id}: {e}")
            report.failures.append(DeletionFailure("notes-query", ticket_id, str(e)))
            return

        results = await asyncio.gather(
            *(self.repository.delete_note(note.id) for note in notes),
            return_exceptions=True,
        )
        for note, result in zip(notes, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to delete note {note.id} of ticket {ticket_id}: {result}")
                report.failures.append(DeletionFailure("note", note.id, str(result)))
            else:
                report.notes_deleted += 1

    def _blob_paths(self, ticket: TicketDocument, report: DeletionReport) -> List[str]:
        """Resolve every owned blob; unresolvable references become failures."""
        references: List[Tuple[str, object]] = [
            (ref.display_url or ref.storage_path or "", ref) for ref in ticket.photo_references()
        ]
        references.extend((url, url) for url in ticket.report_urls())

        paths: List[str] = []
        for label, reference in references:
            try:
                path = resolve_storage_path(reference)
            except BlobPathError as e:
                logger.warning(f"Skipping unresolvable blob reference on ticket {ticket.id}: {e}")
                report.failures.append(DeletionFailure("reference", label or "<empty>", str(e)))
                continue
            if path not in paths:
                paths.append(path)
        return paths

    async def _delete_blobs(self, ticket_id: str, paths: List[str], report: DeletionReport) -> None:
        results = await asyncio.gather(
            *(self.blob_store.delete(path) for path in paths),
            return_exceptions=True,
        )
        for path, result in zip(paths, results):
            if isinstance(result, BlobNotFoundError):
                logger.debug(f"Blob {path} of ticket {ticket_id} was already gone")
            elif isinstance(result, Exception):
                logger.warning(f"Failed to delete blob {path} of ticket {ticket_id}: {result}")
                report.failures.append(DeletionFailure("blob", path, str(result)))
                continue
            report.blobs_deleted += 1
            report.deleted_paths.append(path)
