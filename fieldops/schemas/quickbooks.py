"""QuickBooks invoice and credential schemas."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class InvoiceLineItem(BaseModel):
    description: str = ""
    quantity: float = Field(1, gt=0)
    amount: float = Field(0, ge=0)


class InvoiceCreate(BaseModel):
    """Invoice to create in QuickBooks.

    Line items are taken from ``line_items``, or built from the ticket's
    remediation measurements when ``ticket_id`` is given instead.
    """

    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    invoice_date: date = Field(default_factory=date.today)
    line_items: list[InvoiceLineItem] = Field(default_factory=list)
    ticket_id: Optional[str] = None
    unit_price: float = Field(0, ge=0)
    send: bool = False


class QuickBooksCredentials(BaseModel):
    """Credential update; omitted fields keep their stored value."""

    quick_books_company_id: Optional[str] = Field(None, alias="quickBooksCompanyId")
    client_id: Optional[str] = Field(None, alias="clientId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    access_token: Optional[str] = Field(None, alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    token_expires_at: Optional[str] = Field(None, alias="tokenExpiresAt")

    model_config = {"populate_by_name": True}


class QuickBooksStatus(BaseModel):
    connected: bool
    company_id: Optional[str] = None
    updated_at: Optional[str] = None
