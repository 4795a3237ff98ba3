"""Ticket notes API."""
from fastapi import APIRouter, status

from fieldops.api.deps import Services
from fieldops.schemas.note import NoteCreate

router = APIRouter()


@router.get("/{ticket_id}/notes")
async def list_notes(ticket_id: str, services: Services):
    """Notes of a ticket, oldest first."""
    notes = await services.tickets.list_notes(ticket_id)
    return {"items": [n.to_document() for n in notes], "total": len(notes)}


@router.post("/{ticket_id}/notes", status_code=status.HTTP_201_CREATED)
async def add_note(ticket_id: str, note: NoteCreate, services: Services):
    if not note.user_id and services.user.user:
        note = note.model_copy(update={
            "user_id": services.user.user.get("uid"),
            "user_name": services.user.user.get("displayName"),
        })
    document = await services.tickets.add_note(ticket_id, note)
    return document.to_document()
