"""Device state API - persisted equipment counts and selected project."""
from fastapi import APIRouter

from fieldops.api.deps import Services
from fieldops.exceptions import ValidationError
from fieldops.schemas.device import EquipmentUpdate, ProjectSelection

router = APIRouter()


@router.get("/equipment")
async def get_equipment(services: Services):
    return services.equipment.state


@router.patch("/equipment")
async def update_equipment(update: EquipmentUpdate, services: Services):
    if any(count < 0 for count in update.counts.values()):
        raise ValidationError("Equipment counts cannot be negative")
    try:
        services.equipment.update_equipment(**update.counts)
    except ValueError as e:
        raise ValidationError(str(e))
    if update.equipment_on_site is not None:
        services.equipment.set_equipment_on_site(update.equipment_on_site)
    return services.equipment.state


@router.get("/project")
async def get_selected_project(services: Services):
    return {"projectId": services.project_id.project_id}


@router.put("/project")
async def select_project(selection: ProjectSelection, services: Services):
    if selection.project_id is None:
        services.project_id.clear_project_id()
    else:
        await services.tickets.get_ticket(selection.project_id)
        services.project_id.set_project_id(selection.project_id)
    return {"projectId": services.project_id.project_id}
