import uuid
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import SoftDeleteMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.intervention import Intervention


class Technician(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """
    Modello per l'anagrafica dei tecnici SAV.

    user_id collega il tecnico al suo account sulla piattaforma ed è
    l'identità usata per le notifiche in-app.
    """
    __tablename__ = "technicians"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    skills: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    interventions: Mapped[List["Intervention"]] = relationship(
        "Intervention",
        back_populates="technician",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"Technician(full_name={self.full_name!r})"
