"""
Tests degli endpoint HTTP (FastAPI su httpx.ASGITransport).
"""

import uuid
from decimal import Decimal

import httpx
import pytest

from app.core.config import settings as app_settings
from app.core.database import get_db
from app.core.deps import get_gateway, get_orchestrator
from app.main import app

BASE = "/api/v1"


@pytest.fixture
async def api(session_factory, orchestrator, gateway):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def owner(platform) -> dict:
    return platform.add_client(email="owner@example.com", full_name="Leila Mansour")


@pytest.fixture
def owner_headers(owner, auth_headers) -> dict[str, str]:
    return auth_headers(owner["user_id"], app_settings.client_role)


async def create_intervention(api, platform, staff_headers, client=None, **fields) -> dict:
    payload = {
        "reclamation_id": str(platform.add_reclamation(client=client)),
        "planned_date": "2026-10-20T10:00:00Z",
        **fields,
    }
    response = await api.post(f"{BASE}/interventions/", json=payload, headers=staff_headers)
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================
# Autenticazione e ruoli
# ============================================================


class TestAuth:
    """Tests per token e ruoli."""

    async def test_health(self, api):
        response = await api.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_missing_token(self, api):
        response = await api.get(f"{BASE}/interventions/")

        assert response.status_code == 401

    async def test_invalid_token(self, api):
        response = await api.get(f"{BASE}/interventions/", headers={"Authorization": "Bearer non-valido"})

        assert response.status_code == 401

    async def test_client_cannot_create(self, api, platform, owner, owner_headers):
        response = await api.post(
            f"{BASE}/interventions/",
            json={"reclamation_id": str(platform.add_reclamation(client=owner)), "planned_date": "2026-10-20T10:00:00Z"},
            headers=owner_headers,
        )

        assert response.status_code == 403

    async def test_client_cannot_list_all(self, api, owner_headers):
        response = await api.get(f"{BASE}/interventions/", headers=owner_headers)

        assert response.status_code == 403


# ============================================================
# Interventi
# ============================================================


class TestInterventionEndpoints:
    """Tests per gli endpoint degli interventi."""

    async def test_create_and_list(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)

        assert created["status"] == "planned"
        assert Decimal(created["total_amount"]) == Decimal("0")

        response = await api.get(f"{BASE}/interventions/", headers=staff_headers)
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == created["id"]

    async def test_validation_error_is_400(self, api, staff_headers):
        response = await api.post(f"{BASE}/interventions/", json={"planned_date": "domani"}, headers=staff_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert "planned_date" in body["detail"]
        assert {tuple(e["loc"]) for e in body["extra"]["errors"]} >= {("body", "planned_date")}

    async def test_part_quantity_zero_is_400(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)
        part_id = platform.add_part(stock=5)

        response = await api.post(
            f"{BASE}/interventions/{created['id']}/parts",
            json={"part_id": str(part_id), "quantity": 0},
            headers=staff_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert platform.stock(part_id) == 5

    async def test_labor_hours_zero_is_400(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)

        response = await api.put(
            f"{BASE}/interventions/{created['id']}/labor",
            json={"hours": "0", "hourly_rate": "30"},
            headers=staff_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    async def test_unknown_intervention(self, api, staff_headers):
        response = await api.get(f"{BASE}/interventions/{uuid.uuid4()}", headers=staff_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"

    async def test_insufficient_stock(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)
        part_id = platform.add_part(stock=2)

        response = await api.post(
            f"{BASE}/interventions/{created['id']}/parts",
            json={"part_id": str(part_id), "quantity": 3},
            headers=staff_headers,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INSUFFICIENT_STOCK"
        assert body["extra"] == {"available": 2, "requested": 3}

    async def test_rejected_deduction(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)
        part_id = platform.add_part(stock=5)
        platform.fail_deduct = True

        response = await api.post(
            f"{BASE}/interventions/{created['id']}/parts",
            json={"part_id": str(part_id), "quantity": 1},
            headers=staff_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "REMOTE_CALL_FAILED"

    async def test_status_shortcuts(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)

        response = await api.post(
            f"{BASE}/interventions/{created['id']}/start",
            json={"notes": "Tecnico sul posto"},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"
        assert response.json()["started_at"] is not None

        response = await api.post(f"{BASE}/interventions/{created['id']}/cancel", headers=staff_headers)
        assert response.json()["status"] == "cancelled"

    async def test_assign_technician(self, api, platform, staff_headers, technician):
        created = await create_intervention(api, platform, staff_headers)

        response = await api.put(
            f"{BASE}/interventions/{created['id']}/assign/{technician.id}",
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert response.json()["technician"]["full_name"] == "Karim Trabelsi"

    async def test_delete_and_restore(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)

        response = await api.delete(f"{BASE}/interventions/{created['id']}", headers=staff_headers)
        assert response.status_code == 200
        response = await api.get(f"{BASE}/interventions/{created['id']}", headers=staff_headers)
        assert response.status_code == 404

        response = await api.post(f"{BASE}/interventions/{created['id']}/restore", headers=staff_headers)
        assert response.status_code == 200


# ============================================================
# Visibilità
# ============================================================


class TestVisibility:
    """Tests per l'accesso di clienti e tecnici."""

    async def test_owner_can_view(self, api, platform, staff_headers, owner, owner_headers):
        created = await create_intervention(api, platform, staff_headers, client=owner)

        response = await api.get(f"{BASE}/interventions/{created['id']}", headers=owner_headers)

        assert response.status_code == 200

    async def test_other_client_is_forbidden(self, api, platform, staff_headers, owner, auth_headers):
        created = await create_intervention(api, platform, staff_headers, client=owner)
        other = platform.add_client(email="altro@example.com")

        response = await api.get(
            f"{BASE}/interventions/{created['id']}",
            headers=auth_headers(other["user_id"], app_settings.client_role),
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    async def test_assigned_technician_can_view(self, api, platform, staff_headers, technician, auth_headers):
        created = await create_intervention(api, platform, staff_headers, technician_id=str(technician.id))

        response = await api.get(
            f"{BASE}/interventions/{created['id']}",
            headers=auth_headers(technician.user_id, "Technicien"),
        )

        assert response.status_code == 200

    async def test_other_client_cannot_change_status(self, api, platform, staff_headers, owner, auth_headers):
        created = await create_intervention(api, platform, staff_headers, client=owner)
        other = platform.add_client(email="altro@example.com")

        response = await api.patch(
            f"{BASE}/interventions/{created['id']}/status",
            json={"status": "cancelled"},
            headers=auth_headers(other["user_id"], app_settings.client_role),
        )

        assert response.status_code == 403

    async def test_reclamation_listing_for_owner(self, api, platform, staff_headers, owner, owner_headers):
        created = await create_intervention(api, platform, staff_headers, client=owner)

        response = await api.get(
            f"{BASE}/interventions/reclamation/{created['reclamation_id']}",
            headers=owner_headers,
        )

        assert response.status_code == 200
        assert [i["id"] for i in response.json()] == [created["id"]]


# ============================================================
# Flusso completo fino al PDF
# ============================================================


class TestInvoiceFlow:
    """Tests per il flusso intervento → fattura → PDF."""

    async def test_full_flow(self, api, platform, staff_headers, owner, owner_headers):
        created = await create_intervention(api, platform, staff_headers, client=owner)
        intervention_url = f"{BASE}/interventions/{created['id']}"
        part_id = platform.add_part(stock=10, unit_price="45.00")

        response = await api.post(
            f"{intervention_url}/parts",
            json={"part_id": str(part_id), "quantity": 3},
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert platform.stock(part_id) == 7

        response = await api.put(
            f"{intervention_url}/labor",
            json={"hours": "2", "hourly_rate": "30.00", "description": "Sostituzione pompa"},
            headers=staff_headers,
        )
        assert Decimal(response.json()["total_amount"]) == Decimal("195.00")

        response = await api.post(f"{intervention_url}/complete", headers=staff_headers)
        assert response.json()["status"] == "completed"

        response = await api.post(
            f"{BASE}/invoices/intervention/{created['id']}/generate",
            headers=staff_headers,
        )
        assert response.status_code == 200
        invoice = response.json()
        assert invoice["invoice_number"] == "INV-202610-0001"
        assert Decimal(invoice["parts_total"]) == Decimal("135.00")
        assert Decimal(invoice["labor_total"]) == Decimal("60.00")
        assert Decimal(invoice["total_amount"]) == Decimal("195.00")

        response = await api.post(
            f"{BASE}/invoices/intervention/{created['id']}/generate",
            headers=staff_headers,
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVOICE_ALREADY_EXISTS"

        response = await api.get(f"{BASE}/invoices/intervention/{created['id']}", headers=owner_headers)
        assert response.json()["id"] == invoice["id"]

        response = await api.get(f"{BASE}/invoices/{invoice['id']}/pdf", headers=owner_headers)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert "INV-202610-0001.pdf" in response.headers["content-disposition"]
        assert response.content == b"%PDF-1.7 fattura di test"

    async def test_order_invoice_hidden_from_clients(self, api, staff_headers, owner_headers):
        response = await api.post(
            f"{BASE}/invoices/order/{uuid.uuid4()}/generate",
            json={"total_amount": "80.00", "order_number": "ORD-1001"},
            headers=staff_headers,
        )
        assert response.status_code == 200

        response = await api.get(f"{BASE}/invoices/{response.json()['id']}", headers=owner_headers)
        assert response.status_code == 403

    async def test_invoice_of_uncompleted_intervention(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)

        response = await api.post(
            f"{BASE}/invoices/intervention/{created['id']}/generate",
            headers=staff_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INTERVENTION_NOT_COMPLETED"


# ============================================================
# Tecnici e compensazioni
# ============================================================


class TestTechnicianAndCompensationEndpoints:
    """Tests per anagrafica tecnici e consultazione compensazioni."""

    async def test_create_technician_and_list_available(self, api, staff_headers):
        response = await api.post(
            f"{BASE}/technicians/",
            json={"full_name": "Nour Haddad", "email": "nour@savora.example"},
            headers=staff_headers,
        )
        assert response.status_code == 201
        technician_id = response.json()["id"]

        response = await api.put(
            f"{BASE}/technicians/{technician_id}/availability",
            params={"is_available": "false"},
            headers=staff_headers,
        )
        assert response.json()["is_available"] is False

        response = await api.get(f"{BASE}/technicians/available", headers=staff_headers)
        assert technician_id not in [t["id"] for t in response.json()]

    async def test_compensations_listing(self, api, platform, staff_headers):
        created = await create_intervention(api, platform, staff_headers)
        part_id = platform.add_part(stock=10)
        response = await api.post(
            f"{BASE}/interventions/{created['id']}/parts",
            json={"part_id": str(part_id), "quantity": 2},
            headers=staff_headers,
        )
        part_used_id = response.json()["parts_used"][0]["id"]
        platform.fail_restore = True

        response = await api.delete(
            f"{BASE}/interventions/{created['id']}/parts/{part_used_id}",
            headers=staff_headers,
        )
        assert response.status_code == 200
        assert response.json()["parts_used"] == []

        response = await api.get(f"{BASE}/compensations/", params={"status": "pending"}, headers=staff_headers)
        (record,) = response.json()
        assert record["quantity"] == 2
        assert record["attempts"] == 1

        platform.fail_restore = False
        response = await api.post(f"{BASE}/compensations/retry", headers=staff_headers)
        assert response.json()["compensations_resolved"] == 1
        assert platform.stock(part_id) == 10
