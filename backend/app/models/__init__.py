"""
Modelli Database SQLAlchemy
Progetto: Savora SAV (Interventi)

Import centralizzato di tutti i modelli per la creazione dello schema
e usage generico.
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from app.models.technician import Technician
from app.models.intervention import Intervention, Labor, PartUsed
from app.models.invoice import Invoice
from app.models.outbox import OutboundMessage, StockCompensation

__all__ = [
    "Base",
    "Technician",
    "Intervention",
    "PartUsed",
    "Labor",
    "Invoice",
    "StockCompensation",
    "OutboundMessage",
]
