"""QuickBooks API - credentials and invoice creation."""
from fastapi import APIRouter, status
import logging

from fieldops.api.deps import Services
from fieldops.schemas.quickbooks import InvoiceCreate, QuickBooksCredentials, QuickBooksStatus
from fieldops.services.qbo_service import invoice_lines_from_remediation

logger = logging.getLogger(__name__)
router = APIRouter()


def auth_status(services) -> QuickBooksStatus:
    return QuickBooksStatus(
        connected=bool(services.auth.company_id and services.auth.access_token),
        company_id=services.auth.company_id,
        updated_at=services.auth.get("updatedAt"),
    )


@router.get("/status", response_model=QuickBooksStatus)
async def get_status(services: Services):
    return auth_status(services)


@router.put("/credentials", response_model=QuickBooksStatus)
async def set_credentials(credentials: QuickBooksCredentials, services: Services):
    """Store QuickBooks credentials on the device; omitted fields are kept."""
    services.auth.set_credentials(**credentials.model_dump(by_alias=True))
    return auth_status(services)


@router.delete("/credentials", response_model=QuickBooksStatus)
async def clear_credentials(services: Services):
    services.auth.clear_credentials()
    return auth_status(services)


@router.post("/invoices", status_code=status.HTTP_201_CREATED)
async def create_invoice(invoice: InvoiceCreate, services: Services):
    """Create an invoice, optionally from a ticket's remediation, and optionally email it."""
    line_items = None
    if invoice.ticket_id and not invoice.line_items:
        ticket = await services.tickets.get_ticket(invoice.ticket_id)
        line_items = invoice_lines_from_remediation(ticket.remediation_data, invoice.unit_price)
        if invoice.customer_email is None and ticket.customer_email:
            invoice = invoice.model_copy(update={"customer_email": ticket.customer_email})

    result = await services.quickbooks.create_invoice(invoice, line_items)

    sent = None
    invoice_id = (result.get("Invoice") or {}).get("Id")
    if invoice.send and invoice_id and invoice.customer_email:
        sent = await services.quickbooks.send_invoice(invoice_id, invoice.customer_email)

    return {"invoice": result.get("Invoice", result), "sent": sent is not None}
