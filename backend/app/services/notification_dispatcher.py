"""
Dispatcher delle notifiche in-app e delle email
Progetto: Savora SAV (Interventi)

Decide quali messaggi inviare per ogni evento dell'intervento e li
consegna in modalità best-effort:

| Evento                       | In-app                          | Email                |
|------------------------------|---------------------------------|----------------------|
| Intervento creato            | cliente, tecnico (se assegnato) | cliente (pianificato)|
| Stato → in_progress          | cliente (se non è l'attore)     | -                    |
| Stato → completed            | cliente (se non è l'attore)     | cliente (completato) |
| Stato → cancelled            | cliente (se non è l'attore)     | -                    |
| Tecnico assegnato            | tecnico, cliente                | -                    |
| Fattura emessa               | -                               | cliente (fattura)    |
| Compensazione fallita        | personale configurato           | -                    |

Un messaggio non consegnato viene salvato nell'outbox e ritentato dal job
in background: non influisce mai sull'esito dell'operazione principale.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as default_settings
from app.models.intervention import Intervention
from app.models.invoice import Invoice
from app.models.outbox import OutboundMessage, StockCompensation
from app.models.technician import Technician
from app.schemas.intervention import InterventionStatus
from app.schemas.remote import NotificationRequest
from app.services.email_service import EmailService, email_service as default_email_service
from app.services.gateway import CrossServiceGateway

logger = logging.getLogger(__name__)

CHANNEL_NOTIFICATION = "notification"
CHANNEL_EMAIL = "email"

# Tipi di email: il nome del metodo di EmailService è "send_<kind>"
EMAIL_INTERVENTION_SCHEDULED = "intervention_scheduled"
EMAIL_INTERVENTION_COMPLETED = "intervention_completed"
EMAIL_INVOICE_READY = "invoice_ready"

ENTITY_INTERVENTION = "Intervention"
ENTITY_INVOICE = "Invoice"


@dataclass
class ClientContact:
    """Destinatario lato cliente, ricavato da reclamo e anagrafica."""
    user_id: Optional[uuid.UUID]
    email: Optional[str]
    name: str
    reclamation_title: str


# ------------------------------------------------------------
# Pianificazione dei messaggi (funzioni pure)
# ------------------------------------------------------------
def format_amount(amount: Decimal, currency: str) -> str:
    return f"{amount:.2f} {currency}"


def format_date(value) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value is not None else ""


def notification_message(
    user_id: uuid.UUID,
    title: str,
    message: str,
    notification_type: str,
    entity_id: Optional[uuid.UUID] = None,
    entity_type: Optional[str] = ENTITY_INTERVENTION,
) -> OutboundMessage:
    request = NotificationRequest(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        related_entity_id=entity_id,
        related_entity_type=entity_type,
    )
    return OutboundMessage(
        channel=CHANNEL_NOTIFICATION,
        kind=notification_type,
        payload=request.model_dump(mode="json"),
        status="pending",
        attempts=0,
    )


def email_message(kind: str, **arguments) -> OutboundMessage:
    return OutboundMessage(
        channel=CHANNEL_EMAIL,
        kind=kind,
        payload=arguments,
        status="pending",
        attempts=0,
    )


def plan_intervention_created(
    intervention: Intervention,
    contact: Optional[ClientContact],
    technician: Optional[Technician],
) -> list[OutboundMessage]:
    messages: list[OutboundMessage] = []
    planned = format_date(intervention.planned_date)

    if contact is not None and contact.user_id is not None:
        messages.append(notification_message(
            contact.user_id,
            "Intervento pianificato",
            f"Un intervento per il reclamo '{contact.reclamation_title}' è stato pianificato per il {planned}.",
            "NewIntervention",
            intervention.id,
        ))

    if technician is not None and technician.user_id is not None:
        messages.append(notification_message(
            technician.user_id,
            "Nuovo intervento assegnato",
            f"Ti è stato assegnato un nuovo intervento pianificato per il {planned}.",
            "InterventionAssigned",
            intervention.id,
        ))

    if contact is not None and contact.email:
        messages.append(email_message(
            EMAIL_INTERVENTION_SCHEDULED,
            to_email=contact.email,
            client_name=contact.name,
            reclamation_title=contact.reclamation_title,
            planned_date=planned,
            technician_name=technician.full_name if technician is not None else None,
        ))

    return messages


def plan_status_changed(
    intervention: Intervention,
    new_status: InterventionStatus,
    contact: Optional[ClientContact],
    actor_user_id: Optional[uuid.UUID],
    currency: str,
) -> list[OutboundMessage]:
    if contact is None:
        return []

    messages: list[OutboundMessage] = []
    notify_client = contact.user_id is not None and contact.user_id != actor_user_id
    title = contact.reclamation_title

    if new_status == InterventionStatus.IN_PROGRESS:
        if notify_client:
            messages.append(notification_message(
                contact.user_id,
                "Intervento iniziato",
                f"Il tecnico ha iniziato l'intervento per il reclamo '{title}'.",
                "InterventionStarted",
                intervention.id,
            ))

    elif new_status == InterventionStatus.COMPLETED:
        amount = "gratuito" if intervention.is_free else format_amount(intervention.total_amount, currency)
        if notify_client:
            messages.append(notification_message(
                contact.user_id,
                "Intervento completato",
                f"L'intervento per il reclamo '{title}' è stato completato. Importo: {amount}.",
                "InterventionCompleted",
                intervention.id,
            ))
        if contact.email:
            messages.append(email_message(
                EMAIL_INTERVENTION_COMPLETED,
                to_email=contact.email,
                client_name=contact.name,
                reclamation_title=title,
                is_free=intervention.is_free,
                total_amount=f"{intervention.total_amount:.2f}",
            ))

    elif new_status == InterventionStatus.CANCELLED:
        if notify_client:
            messages.append(notification_message(
                contact.user_id,
                "Intervento annullato",
                f"L'intervento per il reclamo '{title}' è stato annullato.",
                "InterventionCancelled",
                intervention.id,
            ))

    return messages


def plan_technician_assigned(
    intervention: Intervention,
    technician: Technician,
    contact: Optional[ClientContact],
) -> list[OutboundMessage]:
    messages: list[OutboundMessage] = []
    planned = format_date(intervention.planned_date)

    if technician.user_id is not None:
        messages.append(notification_message(
            technician.user_id,
            "Intervento assegnato",
            f"Ti è stato assegnato un intervento pianificato per il {planned}.",
            "InterventionAssigned",
            intervention.id,
        ))

    if contact is not None and contact.user_id is not None:
        messages.append(notification_message(
            contact.user_id,
            "Tecnico assegnato",
            f"Il tecnico {technician.full_name} è stato assegnato al tuo intervento.",
            "TechnicianAssigned",
            intervention.id,
        ))

    return messages


def plan_invoice_ready(
    invoice: Invoice,
    to_email: Optional[str],
    client_name: str,
) -> list[OutboundMessage]:
    if not to_email:
        return []
    return [email_message(
        EMAIL_INVOICE_READY,
        to_email=to_email,
        client_name=client_name,
        invoice_number=invoice.invoice_number,
        total_amount=f"{invoice.total_amount:.2f}",
    )]


def plan_compensation_alert(
    record: StockCompensation,
    staff_user_ids: Iterable[uuid.UUID],
) -> list[OutboundMessage]:
    return [
        notification_message(
            user_id,
            "Compensazione stock non riuscita",
            f"Il ripristino di {record.quantity} pezzi del ricambio {record.part_id} "
            f"non è riuscito e verrà ritentato automaticamente.",
            "StockCompensationFailed",
            record.intervention_id,
        )
        for user_id in staff_user_ids
    ]


# ------------------------------------------------------------
# Dispatcher
# ------------------------------------------------------------
class NotificationDispatcher:
    """
    Consegna best-effort dei messaggi decisi dalle funzioni plan_*.

    Args:
        gateway: Gateway (servizio notifiche e risoluzione destinatari)
        email_sender: Service email
        settings: Configurazione (valuta, destinatari staff)
    """

    def __init__(
        self,
        gateway: CrossServiceGateway,
        email_sender: Optional[EmailService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.gateway = gateway
        self.email_sender = email_sender or default_email_service
        self.settings = settings or default_settings

    # ------------------------------------------------------------
    # Eventi
    # ------------------------------------------------------------
    async def intervention_created(
        self,
        db: AsyncSession,
        intervention: Intervention,
        technician: Optional[Technician],
    ) -> None:
        contact = await self.resolve_contact(intervention.reclamation_id)
        await self.dispatch(db, plan_intervention_created(intervention, contact, technician))

    async def status_changed(
        self,
        db: AsyncSession,
        intervention: Intervention,
        new_status: InterventionStatus,
        actor_user_id: Optional[uuid.UUID],
    ) -> None:
        if new_status == InterventionStatus.PLANNED:
            return
        contact = await self.resolve_contact(intervention.reclamation_id)
        await self.dispatch(db, plan_status_changed(
            intervention, new_status, contact, actor_user_id, self.settings.currency_code
        ))

    async def technician_assigned(
        self,
        db: AsyncSession,
        intervention: Intervention,
        technician: Technician,
    ) -> None:
        contact = await self.resolve_contact(intervention.reclamation_id)
        await self.dispatch(db, plan_technician_assigned(intervention, technician, contact))

    async def invoice_generated(
        self,
        db: AsyncSession,
        invoice: Invoice,
        reclamation_id: Optional[uuid.UUID] = None,
        client_email: Optional[str] = None,
        client_name: Optional[str] = None,
    ) -> None:
        if not client_email and reclamation_id is not None:
            contact = await self.resolve_contact(reclamation_id)
            if contact is not None:
                client_email = contact.email
                client_name = client_name or contact.name
        await self.dispatch(db, plan_invoice_ready(invoice, client_email, client_name or ""))

    async def compensation_failed(self, db: AsyncSession, record: StockCompensation) -> None:
        staff = self.settings.staff_notification_user_ids
        if not staff:
            logger.warning(
                "Nessun destinatario staff configurato per l'avviso di compensazione %s",
                record.idempotency_key,
            )
            return
        await self.dispatch(db, plan_compensation_alert(record, staff))

    # ------------------------------------------------------------
    # Consegna
    # ------------------------------------------------------------
    async def resolve_contact(self, reclamation_id: uuid.UUID) -> Optional[ClientContact]:
        """Ricava il destinatario cliente dal reclamo (None se non disponibile)."""
        reclamation = await self.gateway.get_reclamation(reclamation_id)
        if reclamation is None:
            logger.warning("Reclamo %s non disponibile: cliente non notificato", reclamation_id)
            return None

        client = await self.gateway.get_client(reclamation.client_id)
        return ClientContact(
            user_id=client.user_id if client is not None else None,
            email=reclamation.client_email or (client.email if client is not None else None),
            name=reclamation.client_name or (client.full_name if client is not None else ""),
            reclamation_title=reclamation.title,
        )

    async def dispatch(self, db: AsyncSession, messages: list[OutboundMessage]) -> int:
        """
        Consegna i messaggi; quelli non consegnati vengono salvati nell'outbox.

        Returns:
            int: Numero di messaggi consegnati
        """
        undelivered: list[OutboundMessage] = []
        for message in messages:
            message.attempts = 1
            if not await self.deliver(message):
                undelivered.append(message)

        if undelivered:
            db.add_all(undelivered)
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Impossibile salvare %s messaggi non consegnati: %s", len(undelivered), e)

        return len(messages) - len(undelivered)

    async def deliver(self, message: OutboundMessage) -> bool:
        """Consegna un singolo messaggio; aggiorna last_error in caso di errore."""
        try:
            if message.channel == CHANNEL_NOTIFICATION:
                delivered = await self.gateway.send_notification(
                    NotificationRequest.model_validate(message.payload)
                )
            else:
                sender = getattr(self.email_sender, f"send_{message.kind}")
                delivered = await sender(**message.payload)
        except Exception as e:
            logger.warning("Consegna %s/%s fallita: %s", message.channel, message.kind, e)
            message.last_error = str(e)
            return False

        if not delivered:
            message.last_error = "Consegna rifiutata dal destinatario"
            logger.warning("Consegna %s/%s non riuscita", message.channel, message.kind)
        return delivered
