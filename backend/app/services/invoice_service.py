"""
Service Layer per la Fatturazione
Progetto: Savora SAV (Interventi)

Definisce la logica di business per l'emissione delle fatture:
- da intervento completato (una sola fattura per intervento)
- da ordine (una sola fattura per ordine)
- numerazione progressiva mensile INV-YYYYMM-NNNN
- generazione e archiviazione del PDF
"""

import datetime
import logging
import os
import uuid
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    NotFoundError,
)
from app.core.locks import invoice_number_lock
from app.models.intervention import Intervention, quantize_money
from app.models.invoice import Invoice
from app.models.mixins import utc_now
from app.schemas.intervention import InterventionStatus
from app.services.pdf_service import PdfService, pdf_service as default_pdf_service

# Logger per questo modulo
logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def format_invoice_number(year: int, month: int, sequence: int) -> str:
    """Formato: INV-YYYYMM-NNNN (es. INV-202610-0001)."""
    return f"INV-{year}{month:02d}-{sequence:04d}"


def month_bounds(moment: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
    """Inizio (incluso) e fine (esclusa) del mese UTC di `moment`."""
    start = datetime.datetime(moment.year, moment.month, 1, tzinfo=datetime.timezone.utc)
    if moment.month == 12:
        end = start.replace(year=moment.year + 1, month=1)
    else:
        end = start.replace(month=moment.month + 1)
    return start, end


class InvoiceService:
    """
    Service per l'emissione delle fatture.

    Le operazioni di emissione eseguono commit autonomamente: il numero
    fattura viene assegnato e salvato sotto lo stesso lock.

    Args:
        pdf_service: Renderer PDF
        settings: Configurazione (cartella PDF)
        clock: Sorgente della data/ora corrente (UTC)
    """

    def __init__(
        self,
        pdf_service: Optional[PdfService] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.pdf_service = pdf_service or default_pdf_service
        self.settings = settings or default_settings
        self.clock = clock or utc_now

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_by_id(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        invoice = await db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    async def find_by_intervention(
        self, db: AsyncSession, intervention_id: uuid.UUID
    ) -> Optional[Invoice]:
        result = await db.execute(
            select(Invoice).where(Invoice.intervention_id == intervention_id)
        )
        return result.scalar_one_or_none()

    async def get_by_intervention(self, db: AsyncSession, intervention_id: uuid.UUID) -> Invoice:
        invoice = await self.find_by_intervention(db, intervention_id)
        if invoice is None:
            raise NotFoundError(f"Nessuna fattura per l'intervento {intervention_id}")
        return invoice

    async def find_by_order(self, db: AsyncSession, order_id: uuid.UUID) -> Optional[Invoice]:
        result = await db.execute(select(Invoice).where(Invoice.order_id == order_id))
        return result.scalar_one_or_none()

    async def get_all(
        self,
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Invoice], int]:
        total_result = await db.execute(select(func.count(Invoice.id)))
        total = total_result.scalar() or 0

        stmt = (
            select(Invoice)
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    # ------------------------------------------------------------
    # Emissione
    # ------------------------------------------------------------
    async def generate_for_intervention(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
    ) -> Invoice:
        """
        Emette la fattura di un intervento COMPLETATO.

        Steps:
        1. Verifica che l'intervento esista (non eliminato)
        2. Verifica stato completed
        3. Verifica che non esista già una fattura
        4. Assegna il numero progressivo del mese
        5. Calcola i totali (0 se gratuito) e salva
        6. Genera il PDF (un errore di rendering non annulla la fattura)

        Raises:
            NotFoundError: intervento inesistente
            BusinessValidationError: intervento non completato o già fatturato
            ConflictError: numero fattura già assegnato da un'emissione concorrente
        """
        intervention = await self._load_intervention(db, intervention_id)

        if intervention.status != InterventionStatus.COMPLETED.value:
            raise BusinessValidationError(
                "Impossibile fatturare un intervento non completato. "
                f"Stato attuale: {intervention.status}",
                error_code="INTERVENTION_NOT_COMPLETED",
            )

        if await self.find_by_intervention(db, intervention_id) is not None:
            raise _invoice_exists("intervento")

        parts_total = intervention.parts_total
        labor_total = intervention.labor_total
        invoice = await self._persist(
            db,
            lambda number, now: Invoice(
                id=uuid.uuid4(),
                intervention_id=intervention.id,
                invoice_number=number,
                parts_total=parts_total,
                labor_total=labor_total,
                total_amount=intervention.total_amount,
                is_free=intervention.is_free,
                created_at=now,
            ),
            on_duplicate=lambda: self.find_by_intervention(db, intervention_id),
            origin="intervento",
        )

        await self._store_pdf(db, invoice, intervention=intervention)
        return invoice

    async def generate_for_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        total_amount: Decimal,
        order_number: str,
    ) -> Invoice:
        """
        Emette la fattura di un ordine del servizio Ordini.

        Stessa numerazione e stessa unicità per origine delle fatture da
        intervento; ricambi e manodopera a 0.
        """
        if total_amount < 0:
            raise BusinessValidationError(
                "L'importo della fattura non può essere negativo",
                error_code="INVALID_AMOUNT",
            )

        if await self.find_by_order(db, order_id) is not None:
            raise _invoice_exists("ordine")

        invoice = await self._persist(
            db,
            lambda number, now: Invoice(
                id=uuid.uuid4(),
                order_id=order_id,
                order_number=order_number,
                invoice_number=number,
                parts_total=Decimal("0.00"),
                labor_total=Decimal("0.00"),
                total_amount=quantize_money(total_amount),
                is_free=False,
                created_at=now,
            ),
            on_duplicate=lambda: self.find_by_order(db, order_id),
            origin="ordine",
        )

        await self._store_pdf(db, invoice)
        return invoice

    async def get_pdf(self, db: AsyncSession, invoice_id: uuid.UUID) -> tuple[bytes, str]:
        """
        Restituisce il PDF di una fattura (nome file incluso).

        Usa il file archiviato se presente, altrimenti lo rigenera.

        Raises:
            NotFoundError: fattura inesistente o PDF non generabile
        """
        invoice = await self.get_by_id(db, invoice_id)
        filename = f"{invoice.invoice_number}.pdf"
        file_path = self._file_path(invoice)

        if invoice.pdf_path and os.path.isfile(file_path):
            with open(file_path, "rb") as f:
                return f.read(), filename

        intervention = None
        if invoice.intervention_id is not None:
            intervention = await self._load_intervention(
                db, invoice.intervention_id, include_deleted=True
            )

        pdf_bytes = await self._store_pdf(db, invoice, intervention=intervention)
        if pdf_bytes is None:
            raise NotFoundError(
                f"PDF della fattura {invoice.invoice_number} non disponibile",
                error_code="PDF_NOT_AVAILABLE",
            )
        return pdf_bytes, filename

    # ------------------------------------------------------------
    # Metodi interni
    # ------------------------------------------------------------
    async def _load_intervention(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Intervention:
        stmt = (
            select(Intervention)
            .where(Intervention.id == intervention_id)
            .options(
                selectinload(Intervention.parts_used),
                selectinload(Intervention.labor),
                selectinload(Intervention.technician),
            )
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            stmt = stmt.where(Intervention.is_deleted == False)
        result = await db.execute(stmt)
        intervention = result.scalar_one_or_none()
        if intervention is None:
            raise NotFoundError(f"Intervento {intervention_id} non trovato")
        return intervention

    async def _persist(self, db: AsyncSession, build, on_duplicate, origin: str) -> Invoice:
        """
        Assegna il numero e salva la fattura in modo serializzato.

        Il vincolo unique su intervento/ordine e su numero fattura è la
        garanzia finale contro le emissioni concorrenti.
        """
        async with invoice_number_lock:
            now = self.clock()
            number = await self._next_invoice_number(db, now)
            invoice = build(number, now)
            db.add(invoice)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                if await on_duplicate() is not None:
                    raise _invoice_exists(origin)
                logger.warning("Conflitto sul numero fattura %s: %s", number, e)
                raise ConflictError(
                    f"Numero fattura {number} già assegnato, riprovare",
                    error_code="INVOICE_NUMBER_CONFLICT",
                )

        logger.info("Fattura %s emessa (%s)", invoice.invoice_number, origin)
        return invoice

    async def _next_invoice_number(self, db: AsyncSession, now: datetime.datetime) -> str:
        """
        Genera il numero fattura progressivo del mese UTC corrente.

        Logica:
        1. Su PostgreSQL acquisisce un advisory lock per anno/mese
        2. Conta le fatture emesse nel mese
        3. Formatta count + 1 con zero-padding a 4 cifre
        """
        now = now.astimezone(datetime.timezone.utc)

        if db.get_bind().dialect.name == "postgresql":
            await db.execute(
                text("SELECT pg_advisory_xact_lock(:lock_key)"),
                {"lock_key": now.year * 100 + now.month},
            )

        start, end = month_bounds(now)
        result = await db.execute(
            select(func.count(Invoice.id)).where(
                Invoice.created_at >= start,
                Invoice.created_at < end,
            )
        )
        count = result.scalar() or 0

        if count >= 9999:
            raise ConflictError(
                f"Limite numerazione fatture raggiunto per il mese {now.year}-{now.month:02d}"
            )
        return format_invoice_number(now.year, now.month, count + 1)

    def _file_path(self, invoice: Invoice) -> str:
        return os.path.join(self.settings.invoice_storage_path, f"{invoice.invoice_number}.pdf")

    async def _store_pdf(
        self,
        db: AsyncSession,
        invoice: Invoice,
        intervention: Optional[Intervention] = None,
    ) -> Optional[bytes]:
        """
        Genera e archivia il PDF, aggiornando pdf_path.

        Un errore di rendering o di scrittura viene registrato e la fattura
        resta valida senza PDF.
        """
        try:
            pdf_bytes = self.pdf_service.generate_invoice_pdf(invoice, intervention, invoice.order_number)
            file_path = self._file_path(invoice)
            os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
            with open(file_path, "wb") as f:
                f.write(pdf_bytes)
        except Exception as e:
            logger.warning(
                "Generazione PDF della fattura %s fallita: %s",
                invoice.invoice_number,
                e,
                exc_info=True,
            )
            return None

        invoice.pdf_path = f"/invoices/{invoice.invoice_number}.pdf"
        await db.commit()
        return pdf_bytes


def _invoice_exists(origin: str) -> BusinessValidationError:
    return BusinessValidationError(
        f"Esiste già una fattura per questo {origin}",
        error_code="INVOICE_ALREADY_EXISTS",
    )
