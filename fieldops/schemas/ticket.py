"""Ticket entity model.

Documents travel in the client's camelCase shape (``onSite``,
``remediationData``, ``downloadURL``); Python code uses snake_case field
names. Every creation path starts from ``new_ticket()`` so all documents share
one baseline of defaults.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Base for document-shaped schemas (camelCase on the wire)."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    def to_document(self, **kwargs) -> dict:
        """Dump as a plain JSON-compatible document dict."""
        return self.model_dump(by_alias=True, mode="json", **kwargs)


class PhotoReference(DocumentModel):
    """Blob reference owned by a ticket or room.

    ``storage_path`` is authoritative for deletion, ``download_url`` for display.
    Older records only carry ``uri`` (a bare download URL).
    """

    storage_path: Optional[str] = None
    download_url: Optional[str] = Field(None, alias="downloadURL")
    uri: Optional[str] = None
    label: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def accept_bare_uri(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"uri": value}
        return value

    @property
    def display_url(self) -> Optional[str]:
        return self.download_url or self.uri


class Measurement(DocumentModel):
    description: str = ""
    quantity: float = 0


class Room(DocumentModel):
    name: str = ""
    measurements: list[Measurement] = Field(default_factory=list)
    photos: list[PhotoReference] = Field(default_factory=list)


class RemediationData(DocumentModel):
    rooms: list[Room] = Field(default_factory=list)


class TicketFields(DocumentModel):
    """Canonical ticket template; every field has a default."""

    street: str = ""
    apt: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    date: str = ""

    # Builder fields
    customer: str = ""
    customer_name: str = ""
    customer_number: str = ""
    customer_email: str = ""
    customer_id: str = ""
    home_owner_name: str = ""
    home_owner_number: str = ""
    inspector_name: str = ""

    reason: str = ""
    job_type: str = "inspection"
    hours: str = "2"
    type_of_job: str = "inspection"
    recommended_actions: str = ""
    message_count: int = 0

    # Status flags
    on_site: bool = False
    inspection_complete: bool = False
    remediation_required: bool = False
    remediation_status: str = "notStarted"
    equipment_on_site: bool = False
    site_complete: bool = False
    measurements_required: bool = False

    photos: list[PhotoReference] = Field(default_factory=list)


def new_ticket(**overrides) -> TicketFields:
    """Return the canonical "new ticket" baseline with ``overrides`` applied."""
    return TicketFields.model_validate(overrides)


class TicketCreate(TicketFields):
    """Schema for creating a ticket."""

    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    note: Optional[str] = None


class TicketUpdate(DocumentModel):
    """Partial-field update (only explicitly set fields are written)."""

    street: Optional[str] = None
    apt: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    address: Optional[str] = None
    date: Optional[str] = None
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    customer: Optional[str] = None
    customer_name: Optional[str] = None
    customer_number: Optional[str] = None
    customer_email: Optional[str] = None
    customer_id: Optional[str] = None
    contact_number: Optional[str] = None
    home_owner_name: Optional[str] = None
    home_owner_number: Optional[str] = None
    inspector_name: Optional[str] = None
    reason: Optional[str] = None
    job_type: Optional[str] = None
    hours: Optional[str] = None
    type_of_job: Optional[str] = None
    recommended_actions: Optional[str] = None
    message_count: Optional[int] = None
    on_site: Optional[bool] = None
    inspection_complete: Optional[bool] = None
    remediation_required: Optional[bool] = None
    remediation_status: Optional[str] = None
    equipment_on_site: Optional[bool] = None
    site_complete: Optional[bool] = None
    measurements_required: Optional[bool] = None
    photos: Optional[list[PhotoReference]] = None
    remediation_data: Optional[RemediationData] = None
    pdf_url: Optional[str] = None
    pdf_download_url: Optional[str] = Field(None, alias="pdfDownloadURL")

    model_config = {"extra": "forbid"}

    def changes(self) -> dict:
        """Column-name keyed dict of the explicitly set fields.

        Nested photos and rooms keep their document (camelCase) shape.
        """
        data = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, DocumentModel):
                value = value.to_document()
            elif isinstance(value, list):
                value = [v.to_document() if isinstance(v, DocumentModel) else v for v in value]
            data[name] = value
        return data


class TicketStatusUpdate(DocumentModel):
    """Status flag changes; flags are independent booleans."""

    on_site: Optional[bool] = None
    inspection_complete: Optional[bool] = None
    remediation_required: Optional[bool] = None
    remediation_status: Optional[str] = None
    equipment_on_site: Optional[bool] = None
    site_complete: Optional[bool] = None
    measurements_required: Optional[bool] = None

    def to_update(self) -> TicketUpdate:
        return TicketUpdate.model_validate(self.model_dump(exclude_unset=True))


class TicketDocument(TicketFields):
    """Full ticket document as stored and mirrored."""

    id: str
    project_id: Optional[str] = None
    ticket_number: Optional[str] = None
    source_collection: str = "tickets"
    address: str = ""
    contact_number: str = ""
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    remediation_data: Optional[RemediationData] = None
    pdf_url: Optional[str] = None
    pdf_download_url: Optional[str] = Field(None, alias="pdfDownloadURL")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def photo_references(self) -> list[PhotoReference]:
        """Every photo reachable from the ticket: top-level, then per room."""
        refs = list(self.photos)
        if self.remediation_data:
            for room in self.remediation_data.rooms:
                refs.extend(room.photos)
        return refs

    def report_urls(self) -> list[str]:
        """Report file references (``pdfUrl`` and ``pdfDownloadURL``), deduplicated."""
        urls = []
        for url in (self.pdf_url, self.pdf_download_url):
            if url and url not in urls:
                urls.append(url)
        return urls


class TicketListResponse(BaseModel):
    """Ticket list response."""

    items: list[dict]
    total: int
