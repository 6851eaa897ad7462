"""
Service Layer per le compensazioni di magazzino
Progetto: Savora SAV (Interventi)

Ogni movimento di stock che deve ancora raggiungere il servizio magazzino
(ripristino dopo la rimozione di un ricambio, o dopo un salvataggio locale
fallito) viene prima registrato come intento `pending` e poi eseguito.
Un intento non eseguito resta in coda per il job di ritentativo.

Prima di chiamare il magazzino un intento viene reclamato con un UPDATE
condizionato (`pending` → `in_flight`): chi non ottiene il reclamo non lo
esegue, per cui la richiesta in corso e il job non ricaricano mai due
volte lo stesso ricambio, anche se il magazzino ignora Idempotency-Key.
Un reclamo più vecchio di `outbox_claim_timeout_seconds` (processo
interrotto durante la chiamata) torna disponibile per il job.
"""

import datetime
import logging
import uuid
from typing import Awaitable, Callable, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import CompensationFailure
from app.models.outbox import StockCompensation
from app.services.gateway import CrossServiceGateway

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_IN_FLIGHT = "in_flight"
STATUS_RESOLVED = "resolved"
STATUS_ABANDONED = "abandoned"

CompensationAlert = Callable[[AsyncSession, StockCompensation], Awaitable[None]]


class CompensationLog:
    """
    Registro degli intenti di ricarico stock.

    Args:
        gateway: Gateway verso il servizio magazzino
        alert: Callback invocata quando un'esecuzione immediata fallisce
            (es. avviso al personale)
        settings: Configurazione (scadenza dei reclami)
    """

    def __init__(
        self,
        gateway: CrossServiceGateway,
        alert: Optional[CompensationAlert] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.gateway = gateway
        self.alert = alert
        self.settings = settings or default_settings

    def enqueue(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        part_id: uuid.UUID,
        quantity: int,
        reason: str,
        idempotency_key: Optional[str] = None,
    ) -> StockCompensation:
        """
        Aggiunge un intento alla sessione senza eseguire commit.

        Usato quando l'intento deve essere salvato nella stessa transazione
        della modifica locale che lo genera.
        """
        record = StockCompensation(
            id=uuid.uuid4(),
            intervention_id=intervention_id,
            part_id=part_id,
            quantity=quantity,
            reason=reason,
            idempotency_key=idempotency_key or f"restore-{uuid.uuid4()}",
            status=STATUS_PENDING,
            attempts=0,
        )
        db.add(record)
        return record

    async def compensate(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        part_id: uuid.UUID,
        quantity: int,
        reason: str,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """
        Registra ed esegue subito un intento.

        La sessione deve essere pulita (es. dopo un rollback). Se nemmeno
        la registrazione riesce, il movimento remoto viene comunque tentato.

        Returns:
            bool: True se il servizio magazzino ha applicato il movimento
        """
        record = self.enqueue(db, intervention_id, part_id, quantity, reason, idempotency_key)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Impossibile registrare la compensazione %s per il ricambio %s: %s",
                record.idempotency_key,
                part_id,
                e,
            )
            try:
                await self._apply(record)
            except CompensationFailure as exc:
                logger.error("%s (intento non persistito)", exc.detail)
                return False
            return True

        return await self.run(db, record)

    async def run(self, db: AsyncSession, record: StockCompensation) -> bool:
        """
        Reclama ed esegue un intento già salvato.

        Returns:
            bool: True se il movimento è stato applicato; False se è fallito
                o se l'intento è già in esecuzione altrove
        """
        if not await self.claim(db, record):
            logger.info("Compensazione %s già reclamata: non eseguita", record.idempotency_key)
            return False
        return await self.execute(db, record)

    async def claim(self, db: AsyncSession, record: StockCompensation) -> bool:
        """
        Reclama un intento per l'esecuzione.

        L'UPDATE riesce solo se l'intento è `pending`, o `in_flight` con un
        reclamo scaduto; ogni reclamo conta come un tentativo.

        Returns:
            bool: True se il reclamo è stato ottenuto da questa chiamata
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        expired = now - datetime.timedelta(seconds=self.settings.outbox_claim_timeout_seconds)
        stmt = (
            update(StockCompensation)
            .where(StockCompensation.id == record.id, _claimable(expired))
            .values(
                status=STATUS_IN_FLIGHT,
                claimed_at=now,
                attempts=StockCompensation.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Impossibile reclamare la compensazione %s: %s", record.idempotency_key, e)
            return False

        if result.rowcount != 1:
            return False
        await db.refresh(record)
        return True

    async def execute(self, db: AsyncSession, record: StockCompensation) -> bool:
        """
        Esegue un intento reclamato e ne aggiorna lo stato.

        Un fallimento viene registrato nei log (CompensationFailure) e
        l'intento torna `pending`: non viene mai propagato al chiamante.
        """
        try:
            await self._apply(record)
        except CompensationFailure as exc:
            record.status = STATUS_PENDING
            record.claimed_at = None
            record.last_error = exc.detail
            logger.error(
                "Compensazione %s fallita (tentativo %s): %s",
                record.idempotency_key,
                record.attempts,
                exc.detail,
            )
            await self._save(db)
            if self.alert is not None:
                await self.alert(db, record)
            return False

        record.status = STATUS_RESOLVED
        record.last_error = None
        record.resolved_at = datetime.datetime.now(datetime.timezone.utc)
        await self._save(db)
        logger.info(
            "Compensazione %s eseguita: ricarico %s x%s",
            record.idempotency_key,
            record.part_id,
            record.quantity,
        )
        return True

    async def get_pending(self, db: AsyncSession, limit: int = 50) -> list[StockCompensation]:
        """Intenti da eseguire: `pending` o con reclamo scaduto."""
        expired = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(
            seconds=self.settings.outbox_claim_timeout_seconds
        )
        stmt = (
            select(StockCompensation)
            .where(_claimable(expired))
            .order_by(StockCompensation.created_at)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_all(
        self,
        db: AsyncSession,
        status: Optional[str] = None,
        intervention_id: Optional[uuid.UUID] = None,
    ) -> list[StockCompensation]:
        stmt = select(StockCompensation).order_by(StockCompensation.created_at.desc())
        if status:
            stmt = stmt.where(StockCompensation.status == status)
        if intervention_id:
            stmt = stmt.where(StockCompensation.intervention_id == intervention_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Metodi interni
    # ------------------------------------------------------------
    async def _apply(self, record: StockCompensation) -> None:
        applied = await self.gateway.restore_stock(
            record.part_id,
            record.quantity,
            record.reason,
            idempotency_key=record.idempotency_key,
        )
        if not applied:
            raise CompensationFailure(
                f"Ricarico di {record.quantity} pezzi del ricambio "
                f"{record.part_id} non applicato dal magazzino",
                extra={
                    "intervention_id": str(record.intervention_id),
                    "idempotency_key": record.idempotency_key,
                },
            )

    async def _save(self, db: AsyncSession) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Impossibile aggiornare lo stato della compensazione: %s", e)


def _claimable(expired: datetime.datetime):
    return or_(
        StockCompensation.status == STATUS_PENDING,
        and_(
            StockCompensation.status == STATUS_IN_FLIGHT,
            StockCompensation.claimed_at < expired,
        ),
    )
