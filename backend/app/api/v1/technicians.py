"""
Router FastAPI per i Tecnici
Progetto: Savora SAV (Interventi)
"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import CurrentActor, StaffActor
from app.schemas.technician import TechnicianCreate, TechnicianRead, TechnicianUpdate
from app.services.technician_service import technician_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/technicians",
    tags=["Tecnici"],
)


@router.get("/", response_model=List[TechnicianRead])
async def get_all_technicians(actor: CurrentActor, db: AsyncSession = Depends(get_db)):
    """Recupera la lista dei tecnici."""
    return await technician_service.get_all(db)


@router.get("/available", response_model=List[TechnicianRead])
async def get_available_technicians(actor: CurrentActor, db: AsyncSession = Depends(get_db)):
    """Tecnici disponibili per nuove assegnazioni."""
    return await technician_service.get_all(db, available_only=True)


@router.get("/{id}", response_model=TechnicianRead)
async def get_technician(id: uuid.UUID, actor: CurrentActor, db: AsyncSession = Depends(get_db)):
    """Recupera il dettaglio di un tecnico."""
    return await technician_service.get_by_id(db, id)


@router.post("/", response_model=TechnicianRead, status_code=status.HTTP_201_CREATED)
async def create_technician(data: TechnicianCreate, actor: StaffActor, db: AsyncSession = Depends(get_db)):
    """Crea un nuovo tecnico."""
    technician = await technician_service.create(db, data)
    await db.commit()
    return technician


@router.put("/{id}", response_model=TechnicianRead)
async def update_technician(
    id: uuid.UUID,
    data: TechnicianUpdate,
    actor: StaffActor,
    db: AsyncSession = Depends(get_db),
):
    """Aggiorna i dati di un tecnico."""
    technician = await technician_service.update(db, id, data)
    await db.commit()
    return technician


@router.put("/{id}/availability", response_model=TechnicianRead)
async def set_technician_availability(
    id: uuid.UUID,
    actor: StaffActor,
    is_available: bool = Query(..., description="Disponibilità del tecnico"),
    db: AsyncSession = Depends(get_db),
):
    technician = await technician_service.set_availability(db, id, is_available)
    await db.commit()
    return technician


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_technician(id: uuid.UUID, actor: StaffActor, db: AsyncSession = Depends(get_db)):
    """Soft delete di un tecnico. Blocca se ha interventi aperti assegnati."""
    await technician_service.delete(db, id)
    await db.commit()
