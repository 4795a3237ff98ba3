from fieldops.schemas.ticket import (
    PhotoReference,
    Measurement,
    Room,
    RemediationData,
    TicketFields,
    TicketCreate,
    TicketUpdate,
    TicketStatusUpdate,
    TicketDocument,
    TicketListResponse,
    new_ticket,
)
from fieldops.schemas.note import NoteCreate, NoteDocument
from fieldops.schemas.upload import (
    AssetIn,
    PhotoUploadRequest,
    ReportUploadRequest,
    DeletionReportResponse,
)
