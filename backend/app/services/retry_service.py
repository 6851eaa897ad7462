"""
Job di ritentativo dell'outbox
Progetto: Savora SAV (Interventi)

Ad intervalli regolari:
- riesegue le compensazioni di magazzino `pending` (o con reclamo scaduto)
- riconsegna le notifiche/email non consegnate

Dopo `outbox_max_attempts` tentativi un record viene marcato `abandoned`
e segnalato nei log a livello error.
"""

import datetime
import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, settings as default_settings
from app.core.database import AsyncSessionLocal
from app.models.outbox import OutboundMessage
from app.schemas.outbox import RetryReport
from app.services.compensation_service import STATUS_ABANDONED, CompensationLog
from app.services.email_service import EmailService
from app.services.gateway import CrossServiceGateway
from app.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[], CrossServiceGateway]


class OutboxRetrier:
    """
    Riesecuzione di compensazioni e messaggi pendenti.

    Args:
        session_factory: Factory delle sessioni (default: AsyncSessionLocal)
        gateway_factory: Factory del gateway; di default usa il token tecnico
            configurato in settings.service_token
        email_sender: Service email per la riconsegna
        settings: Configurazione (tentativi massimi, dimensione batch)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        gateway_factory: Optional[GatewayFactory] = None,
        email_sender: Optional[EmailService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.session_factory = session_factory or AsyncSessionLocal
        self.gateway_factory = gateway_factory or self._service_gateway
        self.email_sender = email_sender

    def _service_gateway(self) -> CrossServiceGateway:
        token = self.settings.service_token
        return CrossServiceGateway(
            authorization=f"Bearer {token}" if token else None,
            settings=self.settings,
        )

    async def run_once(
        self,
        db: Optional[AsyncSession] = None,
        gateway: Optional[CrossServiceGateway] = None,
    ) -> RetryReport:
        """Esegue un passaggio completo sull'outbox."""
        gateway = gateway or self.gateway_factory()
        if db is not None:
            return await self._run(db, gateway)
        async with self.session_factory() as session:
            return await self._run(session, gateway)

    async def _run(self, db: AsyncSession, gateway: CrossServiceGateway) -> RetryReport:
        report = RetryReport()
        await self._retry_compensations(db, gateway, report)
        await self._retry_messages(db, gateway, report)
        if report.compensations_resolved or report.messages_delivered:
            logger.info(
                "Outbox: %s compensazioni risolte, %s messaggi consegnati",
                report.compensations_resolved,
                report.messages_delivered,
            )
        return report

    async def _retry_compensations(
        self,
        db: AsyncSession,
        gateway: CrossServiceGateway,
        report: RetryReport,
    ) -> None:
        compensations = CompensationLog(gateway, settings=self.settings)
        for record in await compensations.get_pending(db, limit=self.settings.outbox_batch_size):
            # Reclamato nel frattempo da una richiesta in corso
            if not await compensations.claim(db, record):
                continue
            if await compensations.execute(db, record):
                report.compensations_resolved += 1
            elif record.attempts >= self.settings.outbox_max_attempts:
                record.status = STATUS_ABANDONED
                await self._save(db)
                report.compensations_abandoned += 1
                logger.error(
                    "Compensazione %s abbandonata dopo %s tentativi: verifica manuale della giacenza "
                    "del ricambio %s (%s pezzi)",
                    record.idempotency_key,
                    record.attempts,
                    record.part_id,
                    record.quantity,
                )
            else:
                report.compensations_pending += 1

    async def _retry_messages(
        self,
        db: AsyncSession,
        gateway: CrossServiceGateway,
        report: RetryReport,
    ) -> None:
        dispatcher = NotificationDispatcher(gateway, self.email_sender, self.settings)
        result = await db.execute(
            select(OutboundMessage)
            .where(OutboundMessage.status == "pending")
            .order_by(OutboundMessage.created_at)
            .limit(self.settings.outbox_batch_size)
        )
        for message in result.scalars().all():
            message.attempts += 1
            if await dispatcher.deliver(message):
                message.status = "delivered"
                message.last_error = None
                message.delivered_at = datetime.datetime.now(datetime.timezone.utc)
                report.messages_delivered += 1
            elif message.attempts >= self.settings.outbox_max_attempts:
                message.status = "abandoned"
                report.messages_abandoned += 1
                logger.error(
                    "Messaggio %s/%s abbandonato dopo %s tentativi",
                    message.channel,
                    message.kind,
                    message.attempts,
                )
            else:
                report.messages_pending += 1
            await self._save(db)

    async def _save(self, db: AsyncSession) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Impossibile aggiornare l'outbox: %s", e)


class RetryScheduler:
    """Gestore del job periodico di ritentativo."""

    JOB_ID = "outbox_retry"

    def __init__(
        self,
        retrier: Optional[OutboxRetrier] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.retrier = retrier or OutboxRetrier(settings=self.settings)
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_job,
            IntervalTrigger(seconds=self.settings.outbox_retry_interval_seconds),
            id=self.JOB_ID,
            name="Ritentativo outbox",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "Job di ritentativo avviato (ogni %s secondi)",
            self.settings.outbox_retry_interval_seconds,
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job di ritentativo arrestato")

    async def run_job(self) -> None:
        try:
            await self.retrier.run_once()
        except Exception:
            logger.exception("Errore durante il ritentativo dell'outbox")
