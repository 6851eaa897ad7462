"""
Schemas Pydantic per i contratti dei servizi remoti
Progetto: Savora SAV (Interventi)

I servizi della piattaforma espongono JSON camelCase racchiuso in
``{"success": bool, "data": ..., "message": ...}``.
"""

import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RemoteModel(BaseModel):
    """Base per i DTO remoti: alias camelCase, campi extra ignorati."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PartSnapshot(RemoteModel):
    """Ricambio come restituito dal servizio magazzino."""
    id: uuid.UUID
    reference: str = ""
    name: str
    unit_price: Decimal
    stock_quantity: int


class ReclamationInfo(RemoteModel):
    id: uuid.UUID
    client_id: uuid.UUID
    client_name: str = ""
    client_email: Optional[str] = None
    title: str = ""
    article_name: Optional[str] = None
    is_under_warranty: bool = False


class ClientInfo(RemoteModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    full_name: str = ""
    email: Optional[str] = None


# -------------------------------------------------------------------
# Payload in uscita
# -------------------------------------------------------------------

class StockDeductRequest(RemoteModel):
    quantity: int = Field(..., gt=0)
    intervention_id: uuid.UUID


class StockAdjustRequest(RemoteModel):
    quantity_change: int
    reason: str


class NotificationRequest(RemoteModel):
    user_id: uuid.UUID
    title: str
    message: str
    notification_type: str
    related_entity_id: Optional[uuid.UUID] = None
    related_entity_type: Optional[str] = None
