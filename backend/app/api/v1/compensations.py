"""
Router FastAPI per le compensazioni di magazzino
Progetto: Savora SAV (Interventi)

Consultazione degli intenti di movimento stock e ritentativo manuale
dell'outbox (lo stesso passaggio eseguito periodicamente dal job).
"""

import logging
import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import Gateway, StaffActor
from app.schemas.outbox import RetryReport, StockCompensationRead
from app.services.compensation_service import CompensationLog
from app.services.retry_service import OutboxRetrier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/compensations",
    tags=["Compensazioni"],
)


@router.get("/", response_model=List[StockCompensationRead])
async def get_compensations(
    actor: StaffActor,
    gateway: Gateway,
    status_filter: Optional[Literal["pending", "resolved", "abandoned"]] = Query(None, alias="status"),
    intervention_id: Optional[uuid.UUID] = Query(None, description="Filtro per intervento"),
    db: AsyncSession = Depends(get_db),
):
    """Intenti di movimento stock, dal più recente."""
    return await CompensationLog(gateway).get_all(db, status=status_filter, intervention_id=intervention_id)


@router.post("/retry", response_model=RetryReport)
async def retry_outbox(
    actor: StaffActor,
    gateway: Gateway,
    db: AsyncSession = Depends(get_db),
) -> RetryReport:
    """Riesegue subito compensazioni e messaggi pendenti."""
    report = await OutboxRetrier().run_once(db, gateway)
    logger.info("Ritentativo manuale richiesto da %s: %s", actor.user_id, report.model_dump())
    return report
