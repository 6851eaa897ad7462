"""
Router FastAPI per gli Interventi
Progetto: Savora SAV (Interventi)

Definisce gli endpoint API per il ciclo di vita degli interventi:
pianificazione, cambi di stato, assegnazione del tecnico, ricambi
(con movimenti di magazzino) e manodopera.
"""

import datetime
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import CurrentActor, Orchestrator, StaffActor
from app.schemas.intervention import (
    InterventionCreate,
    InterventionList,
    InterventionRead,
    InterventionStatus,
    InterventionStatusUpdate,
    InterventionUpdate,
    LaborSet,
    PartUsedCreate,
    StatusNote,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/interventions",
    tags=["Interventi"],
)


# -------------------------------------------------------------------
# Letture
# -------------------------------------------------------------------

@router.get(
    "/",
    name="interventi_lista",
    summary="Lista interventi",
    description="Recupera la lista paginata degli interventi con eventuali filtri.",
    response_model=InterventionList,
    status_code=status.HTTP_200_OK,
)
async def get_interventions(
    actor: StaffActor,
    orchestrator: Orchestrator,
    page: int = Query(1, ge=1, description="Numero pagina"),
    page_size: int = Query(20, ge=1, le=100, description="Elementi per pagina"),
    reclamation_id: Optional[uuid.UUID] = Query(None, description="Filtro per reclamo"),
    technician_id: Optional[uuid.UUID] = Query(None, description="Filtro per tecnico"),
    status_filter: Optional[InterventionStatus] = Query(None, alias="status", description="Filtro per stato"),
    is_free: Optional[bool] = Query(None, description="Solo gratuiti / solo a pagamento"),
    date_from: Optional[datetime.datetime] = Query(None, description="Pianificati da"),
    date_to: Optional[datetime.datetime] = Query(None, description="Pianificati fino a"),
    sort_by: str = Query("planned_date", description="planned_date, created_at o status"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
) -> InterventionList:
    interventions, total = await orchestrator.interventions.get_all(
        db,
        page=page,
        page_size=page_size,
        reclamation_id=reclamation_id,
        technician_id=technician_id,
        status=status_filter,
        is_free=is_free,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return InterventionList(
        items=[InterventionRead.model_validate(i) for i in interventions],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/reclamation/{reclamation_id}",
    name="interventi_per_reclamo",
    summary="Interventi di un reclamo",
    response_model=List[InterventionRead],
)
async def get_interventions_by_reclamation(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    reclamation_id: uuid.UUID = Path(..., description="UUID del reclamo"),
    db: AsyncSession = Depends(get_db),
) -> List[InterventionRead]:
    """
    Interventi di un reclamo.

    Un cliente può consultare solo i propri reclami (403 altrimenti).
    """
    interventions = await orchestrator.interventions.get_by_reclamation(db, reclamation_id)
    for intervention in interventions:
        await orchestrator.ensure_can_view(intervention, actor)
    return [InterventionRead.model_validate(i) for i in interventions]


@router.get(
    "/technician/{technician_id}",
    name="interventi_per_tecnico",
    summary="Interventi di un tecnico",
    response_model=List[InterventionRead],
)
async def get_interventions_by_technician(
    actor: StaffActor,
    orchestrator: Orchestrator,
    technician_id: uuid.UUID = Path(..., description="UUID del tecnico"),
    db: AsyncSession = Depends(get_db),
) -> List[InterventionRead]:
    interventions = await orchestrator.interventions.get_by_technician(db, technician_id)
    return [InterventionRead.model_validate(i) for i in interventions]


@router.get(
    "/{intervention_id}",
    name="intervento_dettaglio",
    summary="Dettaglio intervento",
    description="Intervento con ricambi, manodopera, totali e fattura.",
    response_model=InterventionRead,
)
async def get_intervention(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    """
    Raises:
        NotFoundError: Se l'intervento non esiste
        AuthorizationError: Se l'intervento appartiene a un altro cliente
    """
    intervention = await orchestrator.get_intervention_for(db, intervention_id, actor)
    return InterventionRead.model_validate(intervention)


# -------------------------------------------------------------------
# Ciclo di vita
# -------------------------------------------------------------------

@router.post(
    "/",
    name="intervento_crea",
    summary="Pianifica intervento",
    description="Crea un intervento nello stato 'planned' e notifica cliente e tecnico.",
    response_model=InterventionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_intervention(
    data: InterventionCreate,
    actor: StaffActor,
    orchestrator: Orchestrator,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.create_intervention(db, data)
    return InterventionRead.model_validate(intervention)


@router.put(
    "/{intervention_id}",
    name="intervento_aggiorna",
    summary="Aggiorna / ripianifica intervento",
    description="Aggiornamento parziale. NOTA: per cambiare lo stato usare PATCH /status.",
    response_model=InterventionRead,
)
async def update_intervention(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    data: InterventionUpdate = ...,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.update_intervention(db, intervention_id, data)
    return InterventionRead.model_validate(intervention)


@router.patch(
    "/{intervention_id}/status",
    name="intervento_cambia_stato",
    summary="Cambia stato intervento",
    description="Cambia lo stato; le note vengono accodate a quelle esistenti.",
    response_model=InterventionRead,
)
async def change_intervention_status(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    data: InterventionStatusUpdate = ...,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    """
    Cambia lo stato di un intervento.

    Consentito al personale SAV, al tecnico assegnato e al cliente
    proprietario; il cliente non riceve notifiche per le proprie azioni.
    """
    await orchestrator.get_intervention_for(db, intervention_id, actor)
    intervention = await orchestrator.change_status(
        db, intervention_id, data.status, data.notes, actor
    )
    return InterventionRead.model_validate(intervention)


async def _shortcut(
    orchestrator,
    db: AsyncSession,
    intervention_id: uuid.UUID,
    new_status: InterventionStatus,
    body: Optional[StatusNote],
    actor,
) -> InterventionRead:
    await orchestrator.get_intervention_for(db, intervention_id, actor)
    intervention = await orchestrator.change_status(
        db, intervention_id, new_status, body.notes if body else None, actor
    )
    return InterventionRead.model_validate(intervention)


@router.post("/{intervention_id}/start", response_model=InterventionRead, summary="Avvia intervento")
async def start_intervention(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    body: Optional[StatusNote] = None,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    return await _shortcut(orchestrator, db, intervention_id, InterventionStatus.IN_PROGRESS, body, actor)


@router.post("/{intervention_id}/complete", response_model=InterventionRead, summary="Completa intervento")
async def complete_intervention(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    body: Optional[StatusNote] = None,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    return await _shortcut(orchestrator, db, intervention_id, InterventionStatus.COMPLETED, body, actor)


@router.post("/{intervention_id}/cancel", response_model=InterventionRead, summary="Annulla intervento")
async def cancel_intervention(
    actor: CurrentActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    body: Optional[StatusNote] = None,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    return await _shortcut(orchestrator, db, intervention_id, InterventionStatus.CANCELLED, body, actor)


@router.put(
    "/{intervention_id}/assign/{technician_id}",
    name="intervento_assegna_tecnico",
    summary="Assegna tecnico",
    description="Assegna o riassegna il tecnico; notifica tecnico e cliente.",
    response_model=InterventionRead,
)
async def assign_technician(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    technician_id: uuid.UUID = Path(..., description="UUID del tecnico"),
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.assign_technician(db, intervention_id, technician_id)
    return InterventionRead.model_validate(intervention)


@router.delete(
    "/{intervention_id}",
    name="intervento_elimina",
    summary="Elimina intervento",
    description="Eliminazione logica. La giacenza dei ricambi già scaricati non viene ripristinata.",
    status_code=status.HTTP_200_OK,
)
async def delete_intervention(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    await orchestrator.delete_intervention(db, intervention_id)
    return {"message": "Intervento eliminato"}


@router.post(
    "/{intervention_id}/restore",
    name="intervento_ripristina",
    summary="Ripristina intervento eliminato",
    response_model=InterventionRead,
)
async def restore_intervention(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.restore_intervention(db, intervention_id)
    return InterventionRead.model_validate(intervention)


# -------------------------------------------------------------------
# Ricambi e manodopera (nested)
# -------------------------------------------------------------------

@router.post(
    "/{intervention_id}/parts",
    name="ricambio_aggiungi",
    summary="Aggiungi ricambio",
    description="Scarica il ricambio dal magazzino e lo registra sull'intervento "
               "con il prezzo corrente.",
    response_model=InterventionRead,
)
async def add_part(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    data: PartUsedCreate = ...,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    """
    Raises:
        BusinessValidationError: ricambio inesistente o giacenza insufficiente
        RemoteCallFailure: scarico rifiutato dal magazzino
    """
    intervention = await orchestrator.add_part(db, intervention_id, data)
    return InterventionRead.model_validate(intervention)


@router.delete(
    "/{intervention_id}/parts/{part_used_id}",
    name="ricambio_rimuovi",
    summary="Rimuovi ricambio",
    description="Rimuove il ricambio e ne ripristina la giacenza (ritentata se il magazzino non risponde).",
    response_model=InterventionRead,
)
async def remove_part(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    part_used_id: uuid.UUID = Path(..., description="UUID della riga ricambio"),
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.remove_part(db, intervention_id, part_used_id)
    return InterventionRead.model_validate(intervention)


@router.put(
    "/{intervention_id}/labor",
    name="manodopera_imposta",
    summary="Imposta manodopera",
    description="Crea o sovrascrive la manodopera dell'intervento.",
    response_model=InterventionRead,
)
async def set_labor(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    data: LaborSet = ...,
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.set_labor(db, intervention_id, data)
    return InterventionRead.model_validate(intervention)


@router.delete(
    "/{intervention_id}/labor",
    name="manodopera_rimuovi",
    summary="Rimuovi manodopera",
    response_model=InterventionRead,
)
async def remove_labor(
    actor: StaffActor,
    orchestrator: Orchestrator,
    intervention_id: uuid.UUID = Path(..., description="UUID dell'intervento"),
    db: AsyncSession = Depends(get_db),
) -> InterventionRead:
    intervention = await orchestrator.remove_labor(db, intervention_id)
    return InterventionRead.model_validate(intervention)
