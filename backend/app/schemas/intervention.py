"""
Schemas Pydantic per gli Interventi
Progetto: Savora SAV (Interventi)

Definisce gli schemi di validazione e serializzazione per l'API.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


# -------------------------------------------------------------------
# Enum per gli stati dell'intervento
# -------------------------------------------------------------------

class InterventionStatus(str, Enum):
    """Enum che definisce i possibili stati di un intervento."""
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# -------------------------------------------------------------------
# Matrice delle transizioni di stato valide
# -------------------------------------------------------------------

# Applicata dal service layer solo con settings.enforce_terminal_states attivo;
# altrimenti qualsiasi cambio di stato è accettato.
VALID_TRANSITIONS: dict[InterventionStatus, list[InterventionStatus]] = {
    InterventionStatus.PLANNED: [InterventionStatus.IN_PROGRESS, InterventionStatus.CANCELLED],
    InterventionStatus.IN_PROGRESS: [InterventionStatus.COMPLETED, InterventionStatus.CANCELLED],
    InterventionStatus.COMPLETED: [],  # Stato finale
    InterventionStatus.CANCELLED: [],  # Stato finale
}


# -------------------------------------------------------------------
# Schemi di input
# -------------------------------------------------------------------

class InterventionCreate(BaseModel):
    """Dati per pianificare un nuovo intervento."""
    reclamation_id: uuid.UUID = Field(..., description="Reclamo di origine")
    technician_id: Optional[uuid.UUID] = Field(None, description="Tecnico assegnato")
    planned_date: datetime.datetime = Field(..., description="Data/ora pianificata")
    notes: Optional[str] = Field(None, max_length=2000)
    is_free: bool = Field(default=False, description="Intervento gratuito (garanzia)")


class InterventionUpdate(BaseModel):
    """Aggiornamento parziale (ripianificazione, note di diagnosi/risoluzione)."""
    technician_id: Optional[uuid.UUID] = None
    planned_date: Optional[datetime.datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)
    diagnostic_notes: Optional[str] = Field(None, max_length=2000)
    resolution_notes: Optional[str] = Field(None, max_length=2000)


class InterventionStatusUpdate(BaseModel):
    status: InterventionStatus
    notes: Optional[str] = Field(None, max_length=2000, description="Nota accodata alle note esistenti")


class StatusNote(BaseModel):
    """Corpo opzionale delle scorciatoie start/complete/cancel."""
    notes: Optional[str] = Field(None, max_length=2000)


class PartUsedCreate(BaseModel):
    part_id: uuid.UUID = Field(..., description="Ricambio nel servizio magazzino")
    quantity: int = Field(..., ge=1, description="Quantità da scaricare")


# Intervalli ammessi per la manodopera, verificati anche da LaborLedger
LABOR_HOURS_RANGE = (Decimal("0.25"), Decimal("100"))
LABOR_RATE_RANGE = (Decimal("1"), Decimal("1000"))


class LaborSet(BaseModel):
    hours: Decimal = Field(..., ge=LABOR_HOURS_RANGE[0], le=LABOR_HOURS_RANGE[1], decimal_places=2)
    hourly_rate: Decimal = Field(..., ge=LABOR_RATE_RANGE[0], le=LABOR_RATE_RANGE[1], decimal_places=2)
    description: Optional[str] = Field(None, max_length=500)


# -------------------------------------------------------------------
# Schemi di output
# -------------------------------------------------------------------

class PartUsedRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    part_id: uuid.UUID
    part_name: str
    part_reference: str
    quantity: int
    unit_price_snapshot: Decimal
    total_price: Decimal
    created_at: datetime.datetime


class LaborRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    hours: Decimal
    hourly_rate: Decimal
    description: Optional[str] = None
    total_amount: Decimal


class TechnicianSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str


class InvoiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_number: str
    total_amount: Decimal
    pdf_path: Optional[str] = None


class InterventionRead(BaseModel):
    """Intervento con righe e totali calcolati."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reclamation_id: uuid.UUID
    technician_id: Optional[uuid.UUID] = None
    technician: Optional[TechnicianSummary] = None
    status: InterventionStatus
    planned_date: datetime.datetime
    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    is_free: bool
    notes: Optional[str] = None
    diagnostic_notes: Optional[str] = None
    resolution_notes: Optional[str] = None
    parts_used: list[PartUsedRead] = Field(default_factory=list)
    labor: Optional[LaborRead] = None
    invoice: Optional[InvoiceSummary] = None
    parts_total: Decimal
    labor_total: Decimal
    total_amount: Decimal
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @computed_field
    @property
    def is_invoiced(self) -> bool:
        return self.invoice is not None


class InterventionList(BaseModel):
    items: list[InterventionRead]
    total: int
    page: int
    page_size: int

    @computed_field
    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size
