"""
Schemas Pydantic per l'outbox (compensazioni e messaggi in uscita)
Progetto: Savora SAV (Interventi)
"""

import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StockCompensationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    intervention_id: uuid.UUID
    part_id: uuid.UUID
    quantity: int
    reason: str
    status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime.datetime
    claimed_at: Optional[datetime.datetime] = None
    resolved_at: Optional[datetime.datetime] = None


class RetryReport(BaseModel):
    """Esito di un'esecuzione del job di ritentativo."""
    compensations_resolved: int = 0
    compensations_pending: int = 0
    compensations_abandoned: int = 0
    messages_delivered: int = 0
    messages_pending: int = 0
    messages_abandoned: int = 0
