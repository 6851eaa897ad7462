"""
Service Layer per l'entità Intervention
Progetto: Savora SAV (Interventi)

Macchina a stati dell'intervento e operazioni di lettura/scrittura locali:
- creazione, modifica e ripianificazione
- cambio di stato con marcature temporali e note accodate
- assegnazione del tecnico
- eliminazione logica e ripristino

Non esegue commit né invia notifiche: se ne occupa l'orchestratore.
"""

import datetime
import logging
import uuid
from typing import List, Optional

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.intervention import Intervention
from app.models.mixins import utc_now
from app.models.technician import Technician
from app.schemas.intervention import (
    VALID_TRANSITIONS,
    InterventionCreate,
    InterventionStatus,
    InterventionUpdate,
)
from app.services.technician_service import technician_service

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "planned_date": Intervention.planned_date,
    "created_at": Intervention.created_at,
    "status": Intervention.status,
}


def append_note(current: Optional[str], note: Optional[str]) -> Optional[str]:
    """Accoda una nota alle note esistenti (separatore: a capo)."""
    if not note:
        return current
    if not current:
        return note
    return f"{current}\n{note}"


class InterventionService:
    """
    Service per la gestione del ciclo di vita degli interventi.

    Args:
        settings: Configurazione (applicazione della matrice delle transizioni)
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_by_id(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        for_update: bool = False,
        include_deleted: bool = False,
    ) -> Intervention:
        """
        Recupera un intervento con ricambi, manodopera, tecnico e fattura.

        Args:
            db: Sessione database
            intervention_id: UUID dell'intervento
            for_update: Blocca la riga (SELECT ... FOR UPDATE)
            include_deleted: Considera anche gli interventi eliminati

        Raises:
            NotFoundError: Se l'intervento non esiste
        """
        stmt = (
            select(Intervention)
            .where(Intervention.id == intervention_id)
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            stmt = stmt.where(Intervention.is_deleted == False)
        if for_update:
            stmt = stmt.with_for_update()

        result = await db.execute(stmt)
        intervention = result.scalar_one_or_none()

        if not intervention:
            raise NotFoundError(f"Intervento {intervention_id} non trovato")

        return intervention

    async def get_all(
        self,
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
        reclamation_id: Optional[uuid.UUID] = None,
        technician_id: Optional[uuid.UUID] = None,
        status: Optional[InterventionStatus] = None,
        is_free: Optional[bool] = None,
        date_from: Optional[datetime.datetime] = None,
        date_to: Optional[datetime.datetime] = None,
        sort_by: str = "planned_date",
        sort_order: str = "desc",
    ) -> tuple[List[Intervention], int]:
        """
        Lista paginata degli interventi non eliminati con filtri opzionali.

        Returns:
            tuple: (interventi della pagina, totale)
        """
        filters = [Intervention.is_deleted == False]
        if reclamation_id:
            filters.append(Intervention.reclamation_id == reclamation_id)
        if technician_id:
            filters.append(Intervention.technician_id == technician_id)
        if status:
            filters.append(Intervention.status == status.value)
        if is_free is not None:
            filters.append(Intervention.is_free == is_free)
        if date_from:
            filters.append(Intervention.planned_date >= date_from)
        if date_to:
            filters.append(Intervention.planned_date <= date_to)

        count_result = await db.execute(select(func.count(Intervention.id)).where(*filters))
        total = count_result.scalar() or 0

        sort_column = SORTABLE_FIELDS.get(sort_by, Intervention.planned_date)
        order = desc(sort_column) if sort_order == "desc" else asc(sort_column)

        stmt = (
            select(Intervention)
            .where(*filters)
            .order_by(order, Intervention.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_by_reclamation(self, db: AsyncSession, reclamation_id: uuid.UUID) -> List[Intervention]:
        items, _ = await self.get_all(db, page=1, page_size=1000, reclamation_id=reclamation_id)
        return items

    async def get_by_technician(self, db: AsyncSession, technician_id: uuid.UUID) -> List[Intervention]:
        items, _ = await self.get_all(db, page=1, page_size=1000, technician_id=technician_id)
        return items

    # ------------------------------------------------------------
    # Scritture
    # ------------------------------------------------------------
    async def create(
        self,
        db: AsyncSession,
        data: InterventionCreate,
    ) -> tuple[Intervention, Optional[Technician]]:
        """
        Crea un intervento nello stato planned.

        Returns:
            tuple: (intervento, tecnico assegnato o None)

        Raises:
            BusinessValidationError: tecnico inesistente
        """
        technician = None
        if data.technician_id:
            technician = await technician_service.require_assignable(db, data.technician_id)

        intervention = Intervention(
            id=uuid.uuid4(),
            reclamation_id=data.reclamation_id,
            technician_id=data.technician_id,
            status=InterventionStatus.PLANNED.value,
            planned_date=data.planned_date,
            notes=data.notes,
            is_free=data.is_free,
            is_deleted=False,
        )
        db.add(intervention)
        await db.flush()

        logger.info(
            "Intervento %s pianificato per il reclamo %s",
            intervention.id,
            intervention.reclamation_id,
        )
        return intervention, technician

    async def update(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        data: InterventionUpdate,
    ) -> tuple[Intervention, Optional[Technician]]:
        """
        Aggiornamento parziale.

        Returns:
            tuple: (intervento, nuovo tecnico se cambiato, altrimenti None)
        """
        intervention = await self.get_by_id(db, intervention_id, for_update=True)
        update_data = data.model_dump(exclude_unset=True)

        new_technician = None
        technician_id = update_data.pop("technician_id", None)
        if technician_id is not None and technician_id != intervention.technician_id:
            new_technician = await technician_service.require_assignable(db, technician_id)
            intervention.technician_id = technician_id
            intervention.technician = new_technician

        for field, value in update_data.items():
            setattr(intervention, field, value)

        await db.flush()
        return intervention, new_technician

    async def change_status(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        new_status: InterventionStatus,
        notes: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> Intervention:
        """
        Cambia lo stato di un intervento.

        - started_at viene impostato al primo ingresso in in_progress
        - completed_at viene impostato ad ogni ingresso in completed
        - le note vengono accodate a quelle esistenti

        Con settings.enforce_terminal_states la transizione deve essere
        presente in VALID_TRANSITIONS.

        Raises:
            NotFoundError: Se l'intervento non esiste
            BusinessValidationError: Se la transizione non è consentita
        """
        intervention = await self.get_by_id(db, intervention_id, for_update=True)
        current_status = InterventionStatus(intervention.status)

        if self.settings.enforce_terminal_states:
            allowed_transitions = VALID_TRANSITIONS.get(current_status, [])
            if new_status not in allowed_transitions:
                logger.warning(
                    "Transizione non consentita: %s -> %s",
                    current_status.value,
                    new_status.value,
                )
                raise BusinessValidationError(
                    f"Transizione da '{current_status.value}' a '{new_status.value}' non consentita",
                    error_code="INVALID_STATUS_TRANSITION",
                )

        now = now or utc_now()
        intervention.status = new_status.value

        if new_status == InterventionStatus.IN_PROGRESS and intervention.started_at is None:
            intervention.started_at = now
        if new_status == InterventionStatus.COMPLETED:
            intervention.completed_at = now

        intervention.notes = append_note(intervention.notes, notes)

        await db.flush()
        logger.info(
            "Intervento %s: stato %s -> %s",
            intervention.id,
            current_status.value,
            new_status.value,
        )
        return intervention

    async def assign_technician(
        self,
        db: AsyncSession,
        intervention_id: uuid.UUID,
        technician_id: uuid.UUID,
    ) -> tuple[Intervention, Technician]:
        """
        Assegna (o riassegna) il tecnico.

        Raises:
            NotFoundError: intervento inesistente
            BusinessValidationError: tecnico inesistente
        """
        intervention = await self.get_by_id(db, intervention_id, for_update=True)
        technician = await technician_service.require_assignable(db, technician_id)

        intervention.technician_id = technician.id
        intervention.technician = technician
        await db.flush()
        return intervention, technician

    async def delete(self, db: AsyncSession, intervention_id: uuid.UUID) -> Intervention:
        """
        Eliminazione logica.

        La giacenza dei ricambi già scaricati non viene ripristinata.
        """
        intervention = await self.get_by_id(db, intervention_id, for_update=True)
        if intervention.parts_used:
            logger.warning(
                "Intervento %s eliminato con %s ricambi scaricati: giacenza non ripristinata",
                intervention.id,
                len(intervention.parts_used),
            )
        intervention.is_deleted = True
        await db.flush()
        return intervention

    async def restore(self, db: AsyncSession, intervention_id: uuid.UUID) -> Intervention:
        """Ripristina un intervento eliminato logicamente."""
        intervention = await self.get_by_id(db, intervention_id, for_update=True, include_deleted=True)
        intervention.is_deleted = False
        await db.flush()
        return intervention
