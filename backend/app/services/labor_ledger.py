"""
Service Layer per la manodopera degli interventi
Progetto: Savora SAV (Interventi)

Al massimo una voce di manodopera per intervento: l'impostazione
sovrascrive quella esistente.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError
from app.models.intervention import Intervention, Labor
from app.schemas.intervention import LABOR_HOURS_RANGE, LABOR_RATE_RANGE

logger = logging.getLogger(__name__)


class LaborLedger:
    """Gestione della manodopera (solo persistenza locale)."""

    async def get(self, db: AsyncSession, intervention: Intervention) -> Optional[Labor]:
        result = await db.execute(
            select(Labor).where(Labor.intervention_id == intervention.id)
        )
        return result.scalar_one_or_none()

    async def set_labor(
        self,
        db: AsyncSession,
        intervention: Intervention,
        hours: Decimal,
        hourly_rate: Decimal,
        description: Optional[str] = None,
    ) -> Labor:
        """
        Crea o sovrascrive la manodopera dell'intervento.

        Args:
            db: Sessione database
            intervention: Intervento di riferimento
            hours: Ore lavorate
            hourly_rate: Tariffa oraria
            description: Descrizione del lavoro

        Returns:
            Labor: La voce salvata (flush, commit a carico del chiamante)
        """
        min_hours, max_hours = LABOR_HOURS_RANGE
        min_rate, max_rate = LABOR_RATE_RANGE
        if not (min_hours <= hours <= max_hours and min_rate <= hourly_rate <= max_rate):
            raise BusinessValidationError(
                f"Ore ammesse tra {min_hours} e {max_hours}, tariffa oraria tra {min_rate} e {max_rate}",
                error_code="INVALID_LABOR",
                extra={"hours": str(hours), "hourly_rate": str(hourly_rate)},
            )

        labor = await self.get(db, intervention)
        if labor is None:
            labor = Labor(intervention_id=intervention.id)
            db.add(labor)

        labor.hours = hours
        labor.hourly_rate = hourly_rate
        labor.description = description

        await db.flush()
        logger.info(
            "Manodopera impostata sull'intervento %s: %s h x %s",
            intervention.id,
            hours,
            hourly_rate,
        )
        return labor

    async def remove_labor(self, db: AsyncSession, intervention: Intervention) -> None:
        """Elimina la manodopera dell'intervento."""
        labor = await self.get(db, intervention)
        if labor is None:
            raise BusinessValidationError(
                "Nessuna manodopera registrata per questo intervento",
                error_code="LABOR_NOT_FOUND",
            )
        await db.delete(labor)
        await db.flush()
