"""
Modelli SQLAlchemy per gli Interventi tecnici
Progetto: Savora SAV (Interventi)

Contiene:
- Intervention: Intervento tecnico pianificato a seguito di un reclamo
- PartUsed: Ricambio consumato dall'intervento (prezzo congelato all'aggiunta)
- Labor: Manodopera dell'intervento (al massimo una per intervento)
"""


from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import SoftDeleteMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.invoice import Invoice
    from app.models.technician import Technician


# Gli stati sono definiti in app.schemas.intervention.InterventionStatus

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Arrotonda un importo al centesimo (ROUND_HALF_UP)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class Intervention(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """
    Modello per gli interventi tecnici.

    Attributes:
        reclamation_id: UUID del reclamo (servizio Reclami) che ha originato l'intervento
        technician_id: UUID del tecnico assegnato
        status: Stato corrente (planned, in_progress, completed, cancelled)
        planned_date: Data/ora pianificata
        started_at: Impostato al primo passaggio in in_progress
        completed_at: Impostato all'ingresso in completed
        is_free: Intervento gratuito (garanzia); fissato alla creazione
        notes: Note operative, accodate ad ogni cambio di stato
        diagnostic_notes: Note di diagnosi
        resolution_notes: Note di risoluzione

    Relationships:
        technician: Tecnico assegnato
        parts_used: Ricambi consumati
        labor: Manodopera (0..1)
        invoice: Fattura emessa (0..1)

    States:
        planned → in_progress → completed
           ↓          ↓
        cancelled  cancelled
    """

    __tablename__ = "interventions"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    reclamation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        doc="UUID del reclamo di origine (servizio remoto)",
    )

    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("technicians.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="UUID del tecnico assegnato",
    )

    # ------------------------------------------------------------
    # Colonne Stato e Dati
    # ------------------------------------------------------------
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="planned",
        doc="Stato corrente dell'intervento",
    )

    planned_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Data/ora pianificata",
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_free: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Intervento gratuito (es. in garanzia)",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    diagnostic_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    technician: Mapped[Optional["Technician"]] = relationship(
        "Technician",
        back_populates="interventions",
        lazy="selectin",
    )

    parts_used: Mapped[List["PartUsed"]] = relationship(
        "PartUsed",
        back_populates="intervention",
        cascade="all, delete-orphan",
        order_by="PartUsed.created_at",
        lazy="selectin",
    )

    labor: Mapped[Optional["Labor"]] = relationship(
        "Labor",
        back_populates="intervention",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )

    invoice: Mapped[Optional["Invoice"]] = relationship(
        "Invoice",
        back_populates="intervention",
        uselist=False,
        lazy="selectin",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_interventions_status_planned", "status", "planned_date"),
        CheckConstraint(
            "status IN ('planned', 'in_progress', 'completed', 'cancelled')",
            name="ck_interventions_status",
        ),
    )

    # ------------------------------------------------------------
    # Totali calcolati
    # ------------------------------------------------------------
    @property
    def parts_total(self) -> Decimal:
        """Somma di quantity × unit_price_snapshot dei ricambi."""
        return quantize_money(sum((p.total_price for p in self.parts_used), Decimal("0")))

    @property
    def labor_total(self) -> Decimal:
        """Importo della manodopera (0 se assente)."""
        return self.labor.total_amount if self.labor is not None else Decimal("0.00")

    @property
    def total_amount(self) -> Decimal:
        """Totale fatturabile: 0 se gratuito, altrimenti ricambi + manodopera."""
        if self.is_free:
            return Decimal("0.00")
        return quantize_money(self.parts_total + self.labor_total)

    def __repr__(self) -> str:
        return f"<Intervention(id={self.id}, status={self.status}, reclamation_id={self.reclamation_id})>"


class PartUsed(Base, UUIDMixin, TimestampMixin):
    """
    Ricambio consumato da un intervento.

    Nome, riferimento e prezzo unitario sono copiati dal servizio magazzino
    al momento dell'aggiunta e non seguono le variazioni successive.
    """

    __tablename__ = "parts_used"

    intervention_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("interventions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    part_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        doc="UUID del ricambio nel servizio magazzino",
    )

    part_name: Mapped[str] = mapped_column(String(200), nullable=False)
    part_reference: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        nullable=False,
        doc="Prezzo unitario al momento dell'aggiunta",
    )

    intervention: Mapped["Intervention"] = relationship(
        "Intervention",
        back_populates="parts_used",
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_parts_used_quantity_positive"),
        CheckConstraint("unit_price_snapshot >= 0", name="ck_parts_used_price_non_negative"),
    )

    @property
    def total_price(self) -> Decimal:
        """Totale riga (quantity × unit_price_snapshot)."""
        return quantize_money(Decimal(self.quantity) * Decimal(self.unit_price_snapshot))

    def __repr__(self) -> str:
        return f"<PartUsed(part_id={self.part_id}, quantity={self.quantity})>"


class Labor(Base, UUIDMixin, TimestampMixin):
    """Manodopera di un intervento: ore × tariffa oraria."""

    __tablename__ = "labors"

    intervention_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("interventions.id", ondelete="CASCADE"),
        nullable=False,
    )

    hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    intervention: Mapped["Intervention"] = relationship(
        "Intervention",
        back_populates="labor",
    )

    __table_args__ = (
        UniqueConstraint("intervention_id", name="uq_labors_intervention_id"),
        CheckConstraint("hours > 0", name="ck_labors_hours_positive"),
        CheckConstraint("hourly_rate >= 0", name="ck_labors_rate_non_negative"),
    )

    @property
    def total_amount(self) -> Decimal:
        return quantize_money(Decimal(self.hours) * Decimal(self.hourly_rate))

    def __repr__(self) -> str:
        return f"<Labor(intervention_id={self.intervention_id}, hours={self.hours})>"
