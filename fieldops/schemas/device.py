"""On-device state schemas (equipment counts, selected project)."""

from typing import Optional

from pydantic import BaseModel, Field


class EquipmentUpdate(BaseModel):
    """Equipment count changes; omitted types keep their count."""

    counts: dict[str, int] = Field(default_factory=dict)
    equipment_on_site: Optional[bool] = Field(None, alias="equipmentOnSite")

    model_config = {"populate_by_name": True}


class ProjectSelection(BaseModel):
    project_id: Optional[str] = Field(None, alias="projectId")

    model_config = {"populate_by_name": True}
