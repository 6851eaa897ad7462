"""
Service Layer per i ricambi consumati dagli interventi
Progetto: Savora SAV (Interventi)

Mantiene allineati i ricambi registrati sull'intervento e la giacenza del
servizio magazzino, senza transazione distribuita:

Aggiunta:
1. Lettura ricambio (nome, riferimento, prezzo, giacenza)
2. Verifica giacenza (nessuna chiamata remota se insufficiente)
3. Scarico remoto
4. Salvataggio locale della riga con prezzo congelato
5. Se il salvataggio fallisce dopo lo scarico: ripristino compensativo

Rimozione:
1. Cancellazione locale + intento di ripristino nella stessa transazione
2. Ripristino remoto; se fallisce la rimozione locale resta valida e
   l'intento resta in coda per il job di ritentativo
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, RemoteCallFailure
from app.models.intervention import Intervention, PartUsed
from app.services.compensation_service import CompensationLog
from app.services.gateway import CrossServiceGateway

logger = logging.getLogger(__name__)


class PartsLedger:
    """
    Registro dei ricambi di un intervento.

    Le operazioni eseguono commit autonomamente: l'esito del salvataggio
    locale decide se compensare il movimento remoto.
    """

    def __init__(self, gateway: CrossServiceGateway, compensations: CompensationLog) -> None:
        self.gateway = gateway
        self.compensations = compensations

    async def add_part(
        self,
        db: AsyncSession,
        intervention: Intervention,
        part_id: uuid.UUID,
        quantity: int,
    ) -> PartUsed:
        """
        Aggiunge un ricambio all'intervento scaricandolo dal magazzino.

        Args:
            db: Sessione database
            intervention: Intervento (già validato e bloccato dal chiamante)
            part_id: UUID del ricambio nel servizio magazzino
            quantity: Quantità da scaricare (>= 1)

        Returns:
            PartUsed: La riga creata

        Raises:
            BusinessValidationError: quantità non valida, ricambio inesistente,
                giacenza insufficiente
            RemoteCallFailure: il magazzino ha rifiutato lo scarico
            SQLAlchemyError: salvataggio locale fallito (dopo la compensazione)
        """
        # Letto prima di qualsiasi rollback (l'istanza verrebbe scaduta)
        intervention_id = intervention.id

        if quantity < 1:
            raise BusinessValidationError(
                "La quantità deve essere almeno 1",
                error_code="INVALID_QUANTITY",
            )

        # Step 1: Lettura ricambio
        part = await self.gateway.get_part(part_id)
        if part is None:
            raise BusinessValidationError(
                f"Ricambio {part_id} non trovato",
                error_code="PART_NOT_FOUND",
            )

        # Step 2: Verifica giacenza
        if part.stock_quantity < quantity:
            raise BusinessValidationError(
                f"Stock insufficiente. Disponibile: {part.stock_quantity}, Richiesto: {quantity}",
                error_code="INSUFFICIENT_STOCK",
                extra={"available": part.stock_quantity, "requested": quantity},
            )

        # Step 3: Scarico remoto
        operation_id = uuid.uuid4()
        deducted = await self.gateway.deduct_stock(
            part_id,
            quantity,
            intervention_id,
            idempotency_key=f"deduct-{operation_id}",
        )
        if not deducted:
            raise RemoteCallFailure(
                "Errore durante lo scarico del ricambio dal magazzino",
                extra={"part_id": str(part_id)},
            )

        # Step 4: Salvataggio locale
        part_used = PartUsed(
            id=uuid.uuid4(),
            intervention_id=intervention_id,
            part_id=part_id,
            part_name=part.name,
            part_reference=part.reference,
            quantity=quantity,
            unit_price_snapshot=part.unit_price,
        )
        try:
            db.add(part_used)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Salvataggio ricambio %s per l'intervento %s fallito dopo lo scarico: %s",
                part_id,
                intervention_id,
                e,
            )
            # Step 5: Compensazione; l'errore originale resta quello restituito
            await self.compensations.compensate(
                db,
                intervention_id=intervention_id,
                part_id=part_id,
                quantity=quantity,
                reason=f"Ripristino per salvataggio fallito sull'intervento {intervention_id}",
                idempotency_key=f"restore-{operation_id}",
            )
            raise

        logger.info(
            "Ricambio %s x%s aggiunto all'intervento %s",
            part.reference or part_id,
            quantity,
            intervention_id,
        )
        return part_used

    async def remove_part(
        self,
        db: AsyncSession,
        intervention: Intervention,
        part_used_id: uuid.UUID,
    ) -> None:
        """
        Rimuove un ricambio dall'intervento e ne ripristina la giacenza.

        Il ripristino remoto è best-effort: in caso di errore la rimozione
        locale non viene annullata e l'intento resta in coda.

        Raises:
            BusinessValidationError: riga inesistente o di un altro intervento
        """
        result = await db.execute(
            select(PartUsed).where(
                PartUsed.id == part_used_id,
                PartUsed.intervention_id == intervention.id,
            )
        )
        part_used = result.scalar_one_or_none()
        if part_used is None:
            raise BusinessValidationError(
                "Ricambio non presente nell'intervento",
                error_code="PART_USED_NOT_FOUND",
            )

        record = self.compensations.enqueue(
            db,
            intervention_id=intervention.id,
            part_id=part_used.part_id,
            quantity=part_used.quantity,
            reason=f"Ripristino da intervento {intervention.id}",
            idempotency_key=f"restore-{part_used.id}",
        )
        await db.delete(part_used)
        await db.commit()

        logger.info(
            "Ricambio %s rimosso dall'intervento %s",
            part_used.part_id,
            intervention.id,
        )

        if not await self.compensations.run(db, record):
            logger.warning(
                "Ripristino stock del ricambio %s non riuscito: verrà ritentato",
                record.part_id,
            )
