"""
Router FastAPI per la Fatturazione
Progetto: Savora SAV (Interventi)

Definisce gli endpoint API per l'emissione e la consultazione delle
fatture (da intervento o da ordine) e per il download del PDF.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import CurrentActor, Orchestrator, StaffActor
from app.schemas.invoice import (
    InvoiceGenerateRequest,
    InvoiceList,
    InvoiceRead,
    OrderInvoiceRequest,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/invoices",
    tags=["Fatturazione"],
)


# -------------------------------------------------------------------
# Endpoints per Fatture
# -------------------------------------------------------------------

@router.get(
    "/",
    name="fatture_lista",
    summary="Lista fatture",
    description="Recupera la lista paginata delle fatture, dalla più recente.",
    response_model=InvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    actor: StaffActor,
    orchestrator: Orchestrator,
    page: int = Query(1, ge=1, description="Numero pagina"),
    page_size: int = Query(20, ge=1, le=100, description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    invoices, total = await orchestrator.invoices.get_all(db, page=page, page_size=page_size)
    return InvoiceList(
        items=[InvoiceRead.model_validate(i) for i in invoices],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/intervention/{intervention_id}",
    name="fattura_per_intervento",
    summary="Fattura di un intervento",
    response_model=InvoiceRead,
)
async def get_invoice_by_intervention(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await orchestrator.get_invoice_by_intervention_for(db, intervention_id, actor)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/intervention/{intervention_id}/generate",
    name="fattura_genera_da_intervento",
    summary="Genera fattura da intervento",
    description="Emette la fattura di un intervento completato (una sola per intervento) "
               "e invia l'email di fattura disponibile.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def generate_invoice(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    data: Optional[InvoiceGenerateRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    """
    Raises:
        NotFoundError: Se l'intervento non esiste
        BusinessValidationError: Intervento non completato o già fatturato
    """
    invoice = await orchestrator.generate_invoice(db, intervention_id, data)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/order/{order_id}/generate",
    name="fattura_genera_da_ordine",
    summary="Genera fattura da ordine",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def generate_order_invoice(
    actor: StaffActor,
    orchestrator: Orchestrator,
    order_id: uuid.UUID = Path(..., description="UUID dell'ordine"),
    data: OrderInvoiceRequest = ...,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await orchestrator.generate_order_invoice(db, order_id, data)
    return InvoiceRead.model_validate(invoice)


@router.get(
    "/{invoice_id}",
    name="fattura_dettaglio",
    summary="Dettaglio fattura",
    response_model=InvoiceRead,
)
async def get_invoice(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await orchestrator.get_invoice_for(db, invoice_id, actor)
    return InvoiceRead.model_validate(invoice)


@router.get(
    "/{invoice_id}/pdf",
    name="fattura_pdf",
    summary="Scarica PDF fattura",
    description="Restituisce il PDF archiviato, rigenerandolo se necessario.",
    response_class=Response,
)
async def download_invoice_pdf(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    invoice_id: uuid.UUID = Path(..., description="UUID della fattura"),
    db: AsyncSession = Depends(get_db),
) -> Response:
    pdf_bytes, filename = await orchestrator.get_invoice_pdf(db, invoice_id, actor)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
