"""
Schemas Pydantic per le Fatture
Progetto: Savora SAV (Interventi)
"""

import datetime
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InvoiceGenerateRequest(BaseModel):
    """
    Destinatario dell'email "fattura disponibile".

    Se assente, email e nome vengono ricavati dal reclamo dell'intervento.
    """
    client_email: Optional[str] = Field(None, max_length=255)
    client_name: Optional[str] = Field(None, max_length=200)


class OrderInvoiceRequest(BaseModel):
    total_amount: Decimal = Field(..., ge=0, decimal_places=2)
    order_number: str = Field(..., min_length=1, max_length=50)
    client_email: Optional[str] = Field(None, max_length=255)
    client_name: Optional[str] = Field(None, max_length=200)


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    intervention_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    order_number: Optional[str] = None
    invoice_number: str
    parts_total: Decimal
    labor_total: Decimal
    total_amount: Decimal
    is_free: bool
    pdf_path: Optional[str] = None
    created_at: datetime.datetime


class InvoiceList(BaseModel):
    items: list[InvoiceRead]
    total: int
    page: int
    page_size: int
