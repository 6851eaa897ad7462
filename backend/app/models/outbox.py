"""
Modelli SQLAlchemy per l'outbox
Progetto: Savora SAV (Interventi)

Contiene:
- StockCompensation: intento di movimento stock verso il servizio magazzino
  (ripristino dopo una rimozione o dopo un salvataggio fallito)
- OutboundMessage: notifica in-app o email non consegnata, da ritentare

Entrambi vengono scritti nella stessa transazione locale dell'operazione
che li genera e risolti dal job di ritentativo.
"""


from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class StockCompensation(Base, UUIDMixin, TimestampMixin):
    """
    Intento di ricarico stock.

    Attributes:
        idempotency_key: Chiave inoltrata al magazzino per applicare
            l'intento al più una volta
        status: pending → in_flight → resolved | pending | abandoned
        attempts: Tentativi effettuati (reclami ottenuti)
        claimed_at: Istante dell'ultimo reclamo
    """

    __tablename__ = "stock_compensations"

    intervention_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    part_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_stock_compensations_status", "status"),
        CheckConstraint(
            "status IN ('pending', 'in_flight', 'resolved', 'abandoned')",
            name="ck_stock_compensations_status",
        ),
        CheckConstraint("quantity > 0", name="ck_stock_compensations_quantity"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockCompensation(part_id={self.part_id}, "
            f"quantity={self.quantity}, status={self.status})>"
        )


class OutboundMessage(Base, UUIDMixin, TimestampMixin):
    """
    Messaggio verso un destinatario esterno.

    Attributes:
        channel: "notification" (in-app) o "email"
        kind: Tipo di evento (es. intervention_started, invoice_ready)
        payload: Argomenti necessari alla consegna (JSON)
    """

    __tablename__ = "outbound_messages"

    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_outbound_messages_status", "status"),
        CheckConstraint("channel IN ('notification', 'email')", name="ck_outbound_messages_channel"),
        CheckConstraint(
            "status IN ('pending', 'delivered', 'abandoned')",
            name="ck_outbound_messages_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<OutboundMessage(channel={self.channel}, kind={self.kind}, status={self.status})>"
