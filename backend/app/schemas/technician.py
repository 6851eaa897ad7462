import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TechnicianBase(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200, description="Nome e cognome")
    email: str = Field(..., min_length=3, max_length=255, description="Email")
    phone: Optional[str] = Field(None, max_length=50, description="Telefono")
    skills: Optional[str] = Field(None, max_length=1000, description="Competenze")
    user_id: Optional[uuid.UUID] = Field(None, description="Account piattaforma per le notifiche")
    is_available: bool = Field(default=True, description="Disponibile per nuove assegnazioni")


class TechnicianCreate(TechnicianBase):
    pass


class TechnicianUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    skills: Optional[str] = Field(None, max_length=1000)
    user_id: Optional[uuid.UUID] = None
    is_available: Optional[bool] = None


class TechnicianRead(TechnicianBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime.datetime
    updated_at: datetime.datetime
