"""
Document store access for tickets and ticket notes.

Each call opens its own short-lived session so callers can fan out many
operations concurrently. Every committed write notifies the subscription hub
for the collection it touched.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldops.models.ticket import Ticket
from fieldops.models.ticket_note import TicketNote
from fieldops.schemas.note import NoteCreate, NoteDocument
from fieldops.schemas.ticket import RemediationData, TicketDocument, TicketUpdate
from fieldops.services.subscriptions import SubscriptionHub

logger = logging.getLogger(__name__)

TICKETS = "tickets"
NOTES = "ticketNotes"
# Legacy creation flow wrote to "projects"; those documents now live in tickets
LEGACY_PROJECTS = "projects"

_TICKET_COLUMNS = frozenset(c.name for c in Ticket.__table__.columns)
_GENERATED_COLUMNS = frozenset({"id", "project_id", "ticket_number", "created_at", "updated_at"})


def ticket_to_document(ticket: Ticket) -> TicketDocument:
    """Convert Ticket row to its typed document."""
    data = {column: getattr(ticket, column) for column in _TICKET_COLUMNS}
    data["photos"] = data.get("photos") or []
    return TicketDocument.model_validate(data)


def note_to_document(note: TicketNote) -> NoteDocument:
    return NoteDocument(
        id=note.id,
        project_id=note.project_id,
        user_id=note.user_id,
        user_name=note.user_name,
        message=note.message,
        timestamp=note.timestamp,
    )


def make_ticket_number(ticket_id: str) -> str:
    return f"CR-{ticket_id.replace('-', '')[-6:].upper()}"


class TicketRepository:
    """Ticket and note documents over an async session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hub: Optional[SubscriptionHub] = None,
    ):
        self._session_factory = session_factory
        self._hub = hub

    async def _notify(self, *collections: str) -> None:
        if not self._hub:
            return
        for collection in collections:
            await self._hub.notify(collection)

    # ── Tickets ─────────────────────────────────────────────────

    async def create_ticket(
        self,
        fields: Dict[str, Any],
        source_collection: str = TICKETS,
    ) -> TicketDocument:
        """Insert a ticket; the generated id is echoed into ``projectId``."""
        ticket_id = str(uuid.uuid4())
        values = {
            k: v for k, v in fields.items()
            if k in _TICKET_COLUMNS and k not in _GENERATED_COLUMNS
        }
        values["source_collection"] = source_collection

        async with self._session_factory() as session:
            ticket = Ticket(
                id=ticket_id,
                project_id=ticket_id,
                ticket_number=make_ticket_number(ticket_id),
                **values,
            )
            session.add(ticket)
            await session.commit()
            await session.refresh(ticket)
            document = ticket_to_document(ticket)

        logger.info(f"Ticket created: {ticket_id} ({document.ticket_number}) via {source_collection}")
        await self._notify(TICKETS)
        return document

    async def get_ticket(self, ticket_id: str) -> Optional[TicketDocument]:
        async with self._session_factory() as session:
            ticket = await session.get(Ticket, ticket_id)
            return ticket_to_document(ticket) if ticket else None

    async def list_tickets(self, source_collection: Optional[str] = None) -> List[TicketDocument]:
        query = select(Ticket).order_by(Ticket.created_at.asc(), Ticket.id.asc())
        if source_collection:
            query = query.where(Ticket.source_collection == source_collection)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [ticket_to_document(t) for t in result.scalars().all()]

    async def list_ticket_documents(self) -> List[dict]:
        """Snapshot loader for the tickets mirror."""
        return [ticket.to_document() for ticket in await self.list_tickets()]

    async def update_ticket(
        self,
        ticket_id: str,
        changes: Union[TicketUpdate, Dict[str, Any]],
    ) -> Optional[TicketDocument]:
        """Partial-field update. Returns None when the ticket does not exist."""
        if not isinstance(changes, TicketUpdate):
            changes = TicketUpdate.model_validate(changes)
        values = changes.changes()

        async with self._session_factory() as session:
            ticket = await session.get(Ticket, ticket_id)
            if ticket is None:
                return None
            for field, value in values.items():
                setattr(ticket, field, value)
            await session.commit()
            await session.refresh(ticket)
            document = ticket_to_document(ticket)

        logger.debug(f"Ticket {ticket_id} updated: {sorted(values)}")
        await self._notify(TICKETS)
        return document

    async def replace_remediation(
        self,
        ticket_id: str,
        remediation: RemediationData,
    ) -> Optional[TicketDocument]:
        """Rewrite the ticket's rooms wholesale."""
        return await self.update_ticket(ticket_id, TicketUpdate(remediation_data=remediation))

    async def delete_ticket(self, ticket_id: str) -> bool:
        """Delete the ticket row. Deleting an absent ticket is not an error."""
        async with self._session_factory() as session:
            result = await session.execute(delete(Ticket).where(Ticket.id == ticket_id))
            await session.commit()
            deleted = result.rowcount > 0

        if deleted:
            await self._notify(TICKETS)
        return deleted

    # ── Notes ───────────────────────────────────────────────────

    async def add_note(self, project_id: str, note: NoteCreate) -> NoteDocument:
        """Insert a note and bump the ticket's ``messageCount``."""
        async with self._session_factory() as session:
            row = TicketNote(
                id=str(uuid.uuid4()),
                project_id=project_id,
                user_id=note.user_id,
                user_name=note.user_name,
                message=note.message,
            )
            session.add(row)
            await session.execute(
                update(Ticket)
                .where(Ticket.id == project_id)
                .values(message_count=Ticket.message_count + 1)
            )
            await session.commit()
            await session.refresh(row)
            document = note_to_document(row)

        await self._notify(NOTES, TICKETS)
        return document

    async def list_notes(self, project_id: str) -> List[NoteDocument]:
        query = (
            select(TicketNote)
            .where(TicketNote.project_id == project_id)
            .order_by(TicketNote.timestamp.asc(), TicketNote.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [note_to_document(n) for n in result.scalars().all()]

    async def list_note_documents(self) -> List[dict]:
        """Snapshot loader for the notes mirror."""
        query = select(TicketNote).order_by(TicketNote.timestamp.asc(), TicketNote.id.asc())
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [note_to_document(n).to_document() for n in result.scalars().all()]

    async def delete_note(self, note_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(TicketNote).where(TicketNote.id == note_id))
            await session.commit()
            deleted = result.rowcount > 0

        if deleted:
            await self._notify(NOTES)
        return deleted
