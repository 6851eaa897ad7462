"""
Orchestratore del ciclo di vita degli interventi
Progetto: Savora SAV (Interventi)

Punto di ingresso unico delle operazioni pubbliche sugli interventi.
Per ogni operazione:
1. Acquisisce il lock dell'intervento (operazioni di modifica)
2. Valida e modifica lo stato locale (InterventionService, ledger)
3. Esegue il commit
4. Notifica in modalità best-effort (NotificationDispatcher)
5. Rilegge l'intervento per la risposta

I controlli di visibilità (cliente proprietario, tecnico assegnato,
personale SAV) sono centralizzati in ensure_can_view.
"""

import datetime
import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import AuthorizationError, BusinessValidationError
from app.core.locks import InterventionLockRegistry, intervention_locks
from app.models.intervention import Intervention
from app.models.invoice import Invoice
from app.models.mixins import utc_now
from app.schemas.intervention import (
    InterventionCreate,
    InterventionStatus,
    InterventionUpdate,
    LaborSet,
    PartUsedCreate,
)
from app.schemas.invoice import InvoiceGenerateRequest, OrderInvoiceRequest
from app.schemas.token import Actor
from app.services.compensation_service import CompensationLog
from app.services.email_service import EmailService
from app.services.gateway import CrossServiceGateway
from app.services.intervention_service import InterventionService
from app.services.invoice_service import InvoiceService
from app.services.labor_ledger import LaborLedger
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.parts_ledger import PartsLedger
from app.services.pdf_service import PdfService

logger = logging.getLogger(__name__)


class InterventionOrchestrator:
    """
    Facciata che coordina stato, ricambi, manodopera, fatture e notifiche.

    Un'istanza serve una singola richiesta: il gateway porta con sé le
    credenziali del chiamante.

    Args:
        gateway: Gateway verso i servizi remoti
        email_service: Service email (default: istanza globale)
        pdf_service: Renderer PDF (default: istanza globale)
        settings: Configurazione
        locks: Registro dei lock per intervento
        clock: Sorgente della data/ora corrente (UTC)
    """

    def __init__(
        self,
        gateway: CrossServiceGateway,
        email_service: Optional[EmailService] = None,
        pdf_service: Optional[PdfService] = None,
        settings: Optional[Settings] = None,
        locks: Optional[InterventionLockRegistry] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.gateway = gateway
        self.locks = locks or intervention_locks
        self.clock = clock or utc_now

        self.dispatcher = NotificationDispatcher(gateway, email_service, self.settings)
        self.compensations = CompensationLog(
            gateway, alert=self.dispatcher.compensation_failed, settings=self.settings
        )
        self.parts = PartsLedger(gateway, self.compensations)
        self.labor = LaborLedger()
        self.interventions = InterventionService(self.settings)
        self.invoices = InvoiceService(pdf_service, self.settings, self.clock)

    # ------------------------------------------------------------
    # Ciclo di vita
    # ------------------------------------------------------------
    async def create_intervention(self, db: AsyncSession, data: InterventionCreate) -> Intervention:
        intervention, technician = await self.interventions.create(db, data)
        await db.commit()

        await self.dispatcher.intervention_created(db, intervention, technician)
        return await self.interventions.get_by_id(db, intervention.id)

    async def update_intervention(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        data: InterventionUpdate,
    ) -> Intervention:
        async with self.locks.acquire(intervention_id):
            intervention, new_technician = await self.interventions.update(db, intervention_id, data)
            await db.commit()

        if new_technician is not None:
            await self.dispatcher.technician_assigned(db, intervention, new_technician)
        return await self.interventions.get_by_id(db, intervention_id)

    async def change_status(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        new_status: InterventionStatus,
        notes: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Intervention:
        """
        Cambia lo stato e notifica il cliente.

        Il cambio di stato viene salvato prima dell'invio delle notifiche:
        un errore di consegna non lo annulla.
        """
        async with self.locks.acquire(intervention_id):
            intervention = await self.interventions.change_status(
                db, intervention_id, new_status, notes, now=self.clock()
            )
            await db.commit()

        await self.dispatcher.status_changed(
            db,
            intervention,
            new_status,
            actor.user_id if actor is not None else None,
        )
        return await self.interventions.get_by_id(db, intervention_id)

    async def assign_technician(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        technician_id: uuid.UUID,
    ) -> Intervention:
        async with self.locks.acquire(intervention_id):
            intervention, technician = await self.interventions.assign_technician(
                db, intervention_id, technician_id
            )
            await db.commit()

        await self.dispatcher.technician_assigned(db, intervention, technician)
        return await self.interventions.get_by_id(db, intervention_id)

    async def delete_intervention(self, db: AsyncSession, intervention_id: uuid.UUID) -> None:
        async with self.locks.acquire(intervention_id):
            await self.interventions.delete(db, intervention_id)
            await db.commit()

    async def restore_intervention(self, db: AsyncSession, intervention_id: uuid.UUID) -> Intervention:
        async with self.locks.acquire(intervention_id):
            await self.interventions.restore(db, intervention_id)
            await db.commit()
        return await self.interventions.get_by_id(db, intervention_id)

    # ------------------------------------------------------------
    # Ricambi e manodopera
    # ------------------------------------------------------------
    async def add_part(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        data: PartUsedCreate,
    ) -> Intervention:
        async with self.locks.acquire(intervention_id):
            intervention = await self.interventions.get_by_id(db, intervention_id, for_update=True)
            _ensure_not_invoiced(intervention)
            await self.parts.add_part(db, intervention, data.part_id, data.quantity)
        return await self.interventions.get_by_id(db, intervention_id)

    async def remove_part(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        part_used_id: uuid.UUID,
    ) -> Intervention:
        async with self.locks.acquire(intervention_id):
            intervention = await self.interventions.get_by_id(db, intervention_id, for_update=True)
            _ensure_not_invoiced(intervention)
            await self.parts.remove_part(db, intervention, part_used_id)
        return await self.interventions.get_by_id(db, intervention_id)

    async def set_labor(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        data: LaborSet,
    ) -> Intervention:
        async with self.locks.acquire(intervention_id):
            intervention = await self.interventions.get_by_id(db, intervention_id, for_update=True)
            _ensure_not_invoiced(intervention)
            await self.labor.set_labor(db, intervention, data.hours, data.hourly_rate, data.description)
            await db.commit()
        return await self.interventions.get_by_id(db, intervention_id)

    async def remove_labor(self, db: AsyncSession, intervention_id: uuid.UUID) -> Intervention:
        async with self.locks.acquire(intervention_id):
            intervention = await self.interventions.get_by_id(db, intervention_id, for_update=True)
            _ensure_not_invoiced(intervention)
            await self.labor.remove_labor(db, intervention)
            await db.commit()
        return await self.interventions.get_by_id(db, intervention_id)

    # ------------------------------------------------------------
    # Fatturazione
    # ------------------------------------------------------------
    async def generate_invoice(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        request: Optional[InvoiceGenerateRequest] = None,
    ) -> Invoice:
        """
        Emette la fattura di un intervento completato e invia l'email
        "fattura disponibile" al cliente.
        """
        request = request or InvoiceGenerateRequest()
        async with self.locks.acquire(intervention_id):
            invoice = await self.invoices.generate_for_intervention(db, intervention_id)
            intervention = await self.interventions.get_by_id(db, intervention_id)

        await self.dispatcher.invoice_generated(
            db,
            invoice,
            reclamation_id=intervention.reclamation_id,
            client_email=request.client_email,
            client_name=request.client_name,
        )
        return invoice

    async def generate_order_invoice(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        request: OrderInvoiceRequest,
    ) -> Invoice:
        invoice = await self.invoices.generate_for_order(
            db, order_id, request.total_amount, request.order_number
        )
        await self.dispatcher.invoice_generated(
            db,
            invoice,
            client_email=request.client_email,
            client_name=request.client_name,
        )
        return invoice

    # ------------------------------------------------------------
    # Letture con controllo di visibilità
    # ------------------------------------------------------------
    async def get_intervention_for(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        actor: Actor,
    ) -> Intervention:
        intervention = await self.interventions.get_by_id(db, intervention_id)
        await self.ensure_can_view(intervention, actor)
        return intervention

    async def get_invoice_for(self, db: AsyncSession, invoice_id: uuid.UUID, actor: Actor) -> Invoice:
        invoice = await self.invoices.get_by_id(db, invoice_id)
        await self._ensure_can_view_invoice(db, invoice, actor)
        return invoice

    async def get_invoice_by_intervention_for(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        actor: Actor,
    ) -> Invoice:
        await self.get_intervention_for(db, intervention_id, actor)
        return await self.invoices.get_by_intervention(db, intervention_id)

    async def get_invoice_pdf(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        actor: Actor,
    ) -> tuple[bytes, str]:
        await self.get_invoice_for(db, invoice_id, actor)
        return await self.invoices.get_pdf(db, invoice_id)

    async def ensure_can_view(self, intervention: Intervention, actor: Actor) -> None:
        """
        Verifica che l'attore possa vedere l'intervento.

        - personale SAV: sempre
        - tecnico: solo se assegnato all'intervento
        - cliente: solo se il reclamo di origine è suo

        Raises:
            AuthorizationError: accesso a un intervento di un altro cliente
        """
        if actor.role == self.settings.staff_role:
            return

        technician = intervention.technician
        if technician is not None and technician.user_id == actor.user_id:
            return

        if actor.role == self.settings.client_role:
            client = await self.gateway.get_client_by_user_id(actor.user_id)
            reclamation = await self.gateway.get_reclamation(intervention.reclamation_id)
            if client is not None and reclamation is not None and reclamation.client_id == client.id:
                return

        logger.warning(
            "Accesso negato all'intervento %s per l'utente %s (%s)",
            intervention.id,
            actor.user_id,
            actor.role,
        )
        raise AuthorizationError("Non sei autorizzato a visualizzare questo intervento")

    async def _ensure_can_view_invoice(self, db: AsyncSession, invoice: Invoice, actor: Actor) -> None:
        if actor.role == self.settings.staff_role:
            return
        if invoice.intervention_id is None:
            raise AuthorizationError("Non sei autorizzato a visualizzare questa fattura")
        intervention = await self.interventions.get_by_id(
            db, invoice.intervention_id, include_deleted=True
        )
        await self.ensure_can_view(intervention, actor)


def _ensure_not_invoiced(intervention: Intervention) -> None:
    if intervention.invoice is not None:
        raise BusinessValidationError(
            "L'intervento è già stato fatturato: ricambi e manodopera non sono modificabili",
            error_code="INTERVENTION_INVOICED",
        )
