"""
Modello SQLAlchemy per le Fatture
Progetto: Savora SAV (Interventi)

Una fattura nasce da un intervento completato oppure da un ordine
(servizio Ordini) ed è unica per origine.
"""


from __future__ import annotations
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.intervention import Intervention


class Invoice(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le fatture.

    Attributes:
        intervention_id: Intervento fatturato (esclusivo con order_id)
        order_id: Ordine fatturato (servizio remoto, esclusivo con intervention_id)
        order_number: Numero dell'ordine riportato sul PDF (solo fatture da ordine)
        invoice_number: Numero progressivo mensile INV-YYYYMM-NNNN
        parts_total: Totale ricambi
        labor_total: Totale manodopera
        total_amount: Totale fattura (0 se gratuita)
        is_free: Copia del flag dell'intervento al momento dell'emissione
        pdf_path: Percorso pubblico del PDF (None se il rendering è fallito)
        created_at: Data di emissione (usata per la numerazione)
    """

    __tablename__ = "invoices"

    intervention_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("interventions.id", ondelete="RESTRICT"),
        nullable=True,
    )

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        doc="UUID dell'ordine (servizio remoto)",
    )

    order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    invoice_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )

    parts_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    labor_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    is_free: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    pdf_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    intervention: Mapped[Optional["Intervention"]] = relationship(
        "Intervention",
        back_populates="invoice",
        lazy="raise",
    )

    __table_args__ = (
        UniqueConstraint("intervention_id", name="uq_invoices_intervention_id"),
        UniqueConstraint("order_id", name="uq_invoices_order_id"),
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        CheckConstraint(
            "(intervention_id IS NULL) <> (order_id IS NULL)",
            name="ck_invoices_single_origin",
        ),
        CheckConstraint("total_amount >= 0", name="ck_invoices_total_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Invoice(number={self.invoice_number}, total={self.total_amount})>"
