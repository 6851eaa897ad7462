"""
Service Layer per l'entità Technician
Progetto: Savora SAV (Interventi)

Definisce la logica di business per la gestione dei tecnici.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.intervention import Intervention
from app.models.technician import Technician
from app.schemas.technician import TechnicianCreate, TechnicianUpdate

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("planned", "in_progress")


class TechnicianService:
    """
    Service per la gestione delle operazioni CRUD sui tecnici.
    """

    async def get_all(self, db: AsyncSession, available_only: bool = False) -> List[Technician]:
        """Recupera la lista dei tecnici non eliminati."""
        query = select(Technician).where(Technician.is_deleted == False).order_by(Technician.full_name)
        if available_only:
            query = query.where(Technician.is_available == True)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def find(self, db: AsyncSession, id: uuid.UUID) -> Optional[Technician]:
        """Recupera un tecnico non eliminato, None se inesistente."""
        query = select(Technician).where(Technician.id == id, Technician.is_deleted == False)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_id(self, db: AsyncSession, id: uuid.UUID) -> Technician:
        """Recupera il dettaglio di un tecnico."""
        technician = await self.find(db, id)
        if not technician:
            raise NotFoundError(f"Tecnico {id} non trovato")
        return technician

    async def require_assignable(self, db: AsyncSession, id: uuid.UUID) -> Technician:
        """Tecnico da assegnare a un intervento: se inesistente è un errore di validazione."""
        technician = await self.find(db, id)
        if not technician:
            raise BusinessValidationError(
                f"Tecnico {id} non trovato",
                error_code="TECHNICIAN_NOT_FOUND",
            )
        return technician

    async def create(self, db: AsyncSession, data: TechnicianCreate) -> Technician:
        """Crea un nuovo tecnico."""
        technician = Technician(**data.model_dump())
        db.add(technician)
        await db.flush()
        await db.refresh(technician)
        return technician

    async def update(self, db: AsyncSession, id: uuid.UUID, data: TechnicianUpdate) -> Technician:
        """Aggiorna i dati di un tecnico."""
        technician = await self.get_by_id(db, id)

        update_data = data.model_dump(exclude_unset=True)
        for k, v in update_data.items():
            setattr(technician, k, v)

        await db.flush()
        await db.refresh(technician)
        return technician

    async def set_availability(self, db: AsyncSession, id: uuid.UUID, is_available: bool) -> Technician:
        technician = await self.get_by_id(db, id)
        technician.is_available = is_available
        await db.flush()
        await db.refresh(technician)
        return technician

    async def delete(self, db: AsyncSession, id: uuid.UUID) -> None:
        """Soft delete di un tecnico. Blocca se ha interventi aperti assegnati."""
        technician = await self.get_by_id(db, id)

        open_query = select(func.count(Intervention.id)).where(
            Intervention.technician_id == id,
            Intervention.is_deleted == False,
            Intervention.status.in_(OPEN_STATUSES),
        )
        open_count = await db.execute(open_query)

        if (open_count.scalar() or 0) > 0:
            raise BusinessValidationError(
                "Impossibile eliminare il tecnico: ci sono interventi aperti assegnati"
            )

        technician.is_deleted = True
        await db.flush()
        logger.info("Tecnico %s eliminato", id)


technician_service = TechnicianService()
