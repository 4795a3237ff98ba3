"""Tickets API - job site tickets, status flags, remediation and cascading deletion."""
from fastapi import APIRouter, Query, status
from fastapi.responses import FileResponse
from typing import Optional
import logging

from fieldops.api.deps import Services
from fieldops.exceptions import ConfirmationRequiredError
from fieldops.schemas.ticket import (
    RemediationData,
    TicketCreate,
    TicketListResponse,
    TicketStatusUpdate,
    TicketUpdate,
)
from fieldops.schemas.upload import DeletionFailureResponse, DeletionReportResponse
from fieldops.services.csv_export import CSV_MEDIA_TYPE, export_remediation_csv
from fieldops.services.deletion_service import DeletionPrompt, DeletionReport

logger = logging.getLogger(__name__)
router = APIRouter()


def deletion_to_response(report: DeletionReport) -> DeletionReportResponse:
    """Convert DeletionReport to response model."""
    return DeletionReportResponse(
        ticket_id=report.ticket_id,
        ticket_deleted=report.ticket_deleted,
        already_absent=report.already_absent,
        notes_deleted=report.notes_deleted,
        blobs_deleted=report.blobs_deleted,
        failures=[
            DeletionFailureResponse(kind=f.kind, target=f.target, error=f.error)
            for f in report.failures
        ],
        warnings=report.warnings,
    )


async def delete_confirmed(services, ticket_id: str, confirm: bool) -> DeletionReportResponse:
    """Run the cascading deletion; refuses with the prompt when not confirmed."""
    if not confirm:
        raise ConfirmationRequiredError(DeletionPrompt(ticket_id=ticket_id).message)
    report = await services.deletion.delete_ticket(ticket_id)
    return deletion_to_response(report)


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    services: Services,
    source: Optional[str] = Query(None, description="Filter by creation flow (tickets or projects)"),
):
    """List tickets in creation order."""
    tickets = await services.tickets.list_tickets(source)
    return TicketListResponse(items=[t.to_document() for t in tickets], total=len(tickets))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ticket(ticket_data: TicketCreate, services: Services):
    """Create a ticket from the canonical template."""
    ticket = await services.tickets.create_ticket(ticket_data, user=services.user.user)
    return ticket.to_document()


@router.get("/{ticket_id}")
async def get_ticket(ticket_id: str, services: Services):
    ticket = await services.tickets.get_ticket(ticket_id)
    return ticket.to_document()


@router.patch("/{ticket_id}")
async def update_ticket(ticket_id: str, ticket_data: TicketUpdate, services: Services):
    """Update ticket fields (only the fields sent are written)."""
    ticket = await services.tickets.update_fields(ticket_id, ticket_data)
    return ticket.to_document()


@router.post("/{ticket_id}/status")
async def update_ticket_status(ticket_id: str, status_data: TicketStatusUpdate, services: Services):
    ticket = await services.tickets.set_status(ticket_id, status_data)
    return ticket.to_document()


@router.put("/{ticket_id}/remediation")
async def save_remediation(ticket_id: str, remediation: RemediationData, services: Services):
    """Replace the ticket's rooms and measurements."""
    ticket = await services.tickets.save_remediation(ticket_id, remediation)
    return ticket.to_document()


@router.get("/{ticket_id}/remediation.csv")
async def export_remediation(ticket_id: str, services: Services):
    """Download the remediation measurements as CSV."""
    ticket = await services.tickets.get_ticket(ticket_id)
    path = await export_remediation_csv(
        ticket.remediation_data,
        ticket.project_id or ticket.id,
        services.settings.EXPORT_DIR,
    )
    return FileResponse(path, media_type=CSV_MEDIA_TYPE, filename=path.name)


@router.delete("/{ticket_id}", response_model=DeletionReportResponse)
async def delete_ticket(
    ticket_id: str,
    services: Services,
    confirm: bool = Query(False, description="Must be true; deletion cannot be undone"),
):
    """Delete a ticket with its notes, photos and report file.

    Partial failures (a blob or note that could not be removed) are returned
    as warnings; the ticket itself is still deleted.
    """
    return await delete_confirmed(services, ticket_id, confirm)
