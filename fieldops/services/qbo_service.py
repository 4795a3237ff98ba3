"""
QuickBooks Online API client.

Creates and emails invoices for completed jobs. Credentials (company id and
bearer token) come from the persisted ``AuthStore``; the client never refreshes
tokens itself.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from fieldops.exceptions import BusinessRuleError, ErrorCode, ExternalServiceError
from fieldops.schemas.quickbooks import InvoiceCreate, InvoiceLineItem
from fieldops.schemas.ticket import RemediationData
from fieldops.services.persisted_store import AuthStore

logger = logging.getLogger(__name__)

# QBO API base URLs
QBO_API_BASE = "https://quickbooks.api.intuit.com/v3"
QBO_SANDBOX_API_BASE = "https://sandbox-quickbooks.api.intuit.com/v3"

DEFAULT_CUSTOMER_REF = "188"
SERVICES_ITEM_REF = {"value": "1", "name": "Services"}


def invoice_lines_from_remediation(
    remediation: Optional[RemediationData],
    unit_price: float = 0,
) -> List[InvoiceLineItem]:
    """One invoice line per measurement, described as ``<room>: <description>``."""
    if remediation is None:
        return []
    lines = []
    for room in remediation.rooms:
        for measurement in room.measurements:
            if measurement.quantity <= 0:
                continue
            description = f"{room.name}: {measurement.description}" if room.name else measurement.description
            lines.append(InvoiceLineItem(
                description=description,
                quantity=measurement.quantity,
                amount=unit_price,
            ))
    return lines


def build_invoice_payload(invoice: InvoiceCreate, line_items: Optional[List[InvoiceLineItem]] = None) -> dict:
    items = invoice.line_items if line_items is None else line_items
    payload = {
        "AutoDocNumber": True,
        "CustomerRef": {"value": invoice.customer_id or DEFAULT_CUSTOMER_REF},
        "EmailStatus": "NeedToSend",
        "AllowOnlineCreditCardPayment": True,
        "AllowOnlineACHPayment": True,
        "Line": [
            {
                "DetailType": "SalesItemLineDetail",
                "Amount": item.amount,
                "Description": item.description,
                "SalesItemLineDetail": {
                    "ItemRef": dict(SERVICES_ITEM_REF),
                    "UnitPrice": item.amount,
                    "Qty": item.quantity,
                },
            }
            for item in items
        ],
        "TxnDate": invoice.invoice_date.isoformat(),
        "CurrencyRef": {"value": "USD"},
        "TotalAmt": sum(item.quantity * item.amount for item in items),
    }
    if invoice.customer_email:
        payload["BillEmail"] = {"Address": invoice.customer_email}
    return payload


class QuickBooksClient:
    """QuickBooks Online API client bound to the persisted credentials."""

    def __init__(
        self,
        auth_store: AuthStore,
        client: Optional[httpx.AsyncClient] = None,
        sandbox: bool = False,
    ):
        self.auth_store = auth_store
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self.base_url = QBO_SANDBOX_API_BASE if sandbox else QBO_API_BASE

    def _credentials(self) -> tuple[str, str]:
        company_id = self.auth_store.company_id
        access_token = self.auth_store.access_token
        if not company_id or not access_token:
            logger.warning("QuickBooks request attempted without credentials")
            raise BusinessRuleError("Missing QuickBooks credentials.")
        return company_id, access_token

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[dict] = None,
        content_type: str = "application/json",
    ) -> Dict[str, Any]:
        """Make authenticated QBO API request."""
        company_id, access_token = self._credentials()
        url = f"{self.base_url}/company/{company_id}/{endpoint}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Content-Type": content_type,
        }

        try:
            response = await self._client.request(method, url, headers=headers, json=json_data)
        except httpx.HTTPError as e:
            logger.error("QBO API request failed", exc_info=True)
            raise ExternalServiceError(
                "QuickBooks", f"Failed to connect to QuickBooks API: {e}", ErrorCode.QUICKBOOKS_ERROR
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from QuickBooks: {response.text[:200]}")
            raise ExternalServiceError(
                "QuickBooks", "Invalid JSON from QuickBooks.", ErrorCode.QUICKBOOKS_ERROR
            ) from e

        if response.is_error:
            fault = data.get("Fault") or data.get("fault") or {}
            errors = fault.get("Error") or fault.get("error") or []
            message = (errors[0].get("Message") or errors[0].get("message")) if errors else None
            logger.error(f"QBO API error {response.status_code}: {response.text[:200]}")
            detail = f"QuickBooks error {response.status_code}"
            if message:
                detail += f": {message}"
            raise ExternalServiceError("QuickBooks", detail, ErrorCode.QUICKBOOKS_ERROR)

        return data

    async def create_invoice(
        self,
        invoice: InvoiceCreate,
        line_items: Optional[List[InvoiceLineItem]] = None,
    ) -> Dict[str, Any]:
        payload = build_invoice_payload(invoice, line_items)
        if not payload["Line"]:
            raise BusinessRuleError("Invoice has no line items.")
        result = await self._api_request("POST", "invoice", payload)
        invoice_id = (result.get("Invoice") or {}).get("Id")
        logger.info(f"QuickBooks invoice created: {invoice_id}")
        return result

    async def send_invoice(self, invoice_id: str, email: str) -> Dict[str, Any]:
        """Email an existing invoice to ``email``."""
        endpoint = f"invoice/{invoice_id}/send?sendTo={quote(email, safe='')}"
        result = await self._api_request("POST", endpoint, content_type="application/octet-stream")
        logger.info(f"QuickBooks invoice {invoice_id} sent to {email}")
        return result

    async def close(self) -> None:
        await self._client.aclose()
