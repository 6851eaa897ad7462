"""
Tests for TechnicianService.
"""

import datetime
import uuid

import pytest

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.schemas.intervention import InterventionCreate, InterventionStatus
from app.schemas.technician import TechnicianCreate, TechnicianUpdate
from app.services.technician_service import technician_service


class TestTechnicianService:
    """Tests per l'anagrafica dei tecnici."""

    async def test_update(self, db, technician):
        result = await technician_service.update(db, technician.id, TechnicianUpdate(phone="+216 71 000 000"))

        assert result.phone == "+216 71 000 000"
        assert result.full_name == "Karim Trabelsi"

    async def test_available_only(self, db, technician):
        busy = await technician_service.create(
            db, TechnicianCreate(full_name="Anis Gharbi", email="anis@savora.example", is_available=False)
        )

        available = await technician_service.get_all(db, available_only=True)
        everyone = await technician_service.get_all(db)

        assert [t.id for t in available] == [technician.id]
        assert {t.id for t in everyone} == {technician.id, busy.id}

    async def test_get_unknown(self, db):
        with pytest.raises(NotFoundError):
            await technician_service.get_by_id(db, uuid.uuid4())

    async def test_delete_blocked_by_open_intervention(self, db, orchestrator, platform, technician):
        """Test un tecnico con interventi aperti non può essere eliminato."""
        await orchestrator.create_intervention(
            db,
            InterventionCreate(
                reclamation_id=platform.add_reclamation(),
                technician_id=technician.id,
                planned_date=datetime.datetime(2026, 10, 20, tzinfo=datetime.timezone.utc),
            ),
        )

        with pytest.raises(BusinessValidationError):
            await technician_service.delete(db, technician.id)

    async def test_delete_after_completion(self, db, orchestrator, platform, technician):
        intervention = await orchestrator.create_intervention(
            db,
            InterventionCreate(
                reclamation_id=platform.add_reclamation(),
                technician_id=technician.id,
                planned_date=datetime.datetime(2026, 10, 20, tzinfo=datetime.timezone.utc),
            ),
        )
        await orchestrator.change_status(db, intervention.id, InterventionStatus.COMPLETED)

        await technician_service.delete(db, technician.id)

        assert await technician_service.find(db, technician.id) is None
