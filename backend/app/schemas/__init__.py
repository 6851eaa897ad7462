"""
Schemas Pydantic per il progetto Savora SAV (Interventi)

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle richieste/risposte API e dei contratti remoti.
"""

# Import degli schemi per renderli disponibili tramite import diretto
# es: from app.schemas import InterventionRead, InvoiceRead, etc.

from app.schemas.token import Actor, TokenPayload
from app.schemas.intervention import (
    VALID_TRANSITIONS,
    InterventionCreate,
    InterventionList,
    InterventionRead,
    InterventionStatus,
    InterventionStatusUpdate,
    InterventionUpdate,
    LaborRead,
    LaborSet,
    PartUsedCreate,
    PartUsedRead,
    StatusNote,
)
from app.schemas.invoice import (
    InvoiceGenerateRequest,
    InvoiceList,
    InvoiceRead,
    OrderInvoiceRequest,
)
from app.schemas.technician import TechnicianCreate, TechnicianRead, TechnicianUpdate
from app.schemas.remote import ClientInfo, NotificationRequest, PartSnapshot, ReclamationInfo
from app.schemas.outbox import RetryReport, StockCompensationRead

__all__ = [
    "Actor",
    "TokenPayload",
    "VALID_TRANSITIONS",
    "InterventionCreate",
    "InterventionList",
    "InterventionRead",
    "InterventionStatus",
    "InterventionStatusUpdate",
    "InterventionUpdate",
    "LaborRead",
    "LaborSet",
    "PartUsedCreate",
    "PartUsedRead",
    "StatusNote",
    "InvoiceGenerateRequest",
    "InvoiceList",
    "InvoiceRead",
    "OrderInvoiceRequest",
    "TechnicianCreate",
    "TechnicianRead",
    "TechnicianUpdate",
    "ClientInfo",
    "NotificationRequest",
    "PartSnapshot",
    "ReclamationInfo",
    "RetryReport",
    "StockCompensationRead",
]
