"""Projects API - older creation flow, stored as tickets tagged ``projects``."""
from fastapi import APIRouter, Query, status

from fieldops.api.deps import Services
from fieldops.api.v2.tickets import delete_confirmed
from fieldops.schemas.ticket import TicketCreate, TicketListResponse
from fieldops.schemas.upload import DeletionReportResponse
from fieldops.services.ticket_repository import LEGACY_PROJECTS

router = APIRouter()


@router.get("", response_model=TicketListResponse)
async def list_projects(services: Services):
    tickets = await services.tickets.list_tickets(LEGACY_PROJECTS)
    return TicketListResponse(items=[t.to_document() for t in tickets], total=len(tickets))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(project_data: TicketCreate, services: Services):
    ticket = await services.tickets.create_project(project_data, user=services.user.user)
    return {
        "success": True,
        "message": "Project created successfully.",
        "project": ticket.to_document(),
    }


@router.delete("/{project_id}", response_model=DeletionReportResponse)
async def delete_project(
    project_id: str,
    services: Services,
    confirm: bool = Query(False),
):
    return await delete_confirmed(services, project_id, confirm)
