"""
Pytest configuration and fixtures.

I servizi remoti della piattaforma (magazzino, reclami, clienti, notifiche)
sono simulati da FakePlatform tramite httpx.MockTransport; la persistenza
usa un database SQLite in memoria (aiosqlite).
"""

import datetime
import json
import os
import uuid
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

# Configurazione di test prima di qualsiasi import di app.*
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OUTBOX_RETRY_ENABLED", "false")

import httpx
import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings, settings as app_settings
from app.core.locks import InterventionLockRegistry
from app.models import Base
from app.schemas.technician import TechnicianCreate
from app.services.email_service import EmailService
from app.services.gateway import CrossServiceGateway
from app.services.orchestrator import InterventionOrchestrator
from app.services.pdf_service import PdfService
from app.services.technician_service import technician_service

STAFF_USER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")


# ============================================================
# Servizi remoti simulati
# ============================================================


def _ok(data=None) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data, "message": None})


def _error(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"success": False, "data": None, "message": message})


class FakePlatform:
    """
    Magazzino, reclami, clienti e notifiche in memoria.

    Con honor_idempotency_key il ricarico è idempotente sulla chiave
    Idempotency-Key; senza, ogni richiesta viene applicata.
    """

    def __init__(self):
        self.parts: dict[uuid.UUID, dict] = {}
        self.reclamations: dict[uuid.UUID, dict] = {}
        self.clients: dict[uuid.UUID, dict] = {}
        self.notifications: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.applied_keys: set[str] = set()
        self.fail_deduct = False
        self.fail_restore = False
        self.fail_notifications = False
        self.honor_idempotency_key = True

    # ------------------------------------------------------------
    # Dati di test
    # ------------------------------------------------------------
    def add_part(
        self,
        stock: int = 10,
        unit_price: str = "45.00",
        name: str = "Pompa scarico",
        reference: str = "PMP-001",
    ) -> uuid.UUID:
        part_id = uuid.uuid4()
        self.parts[part_id] = {
            "name": name,
            "reference": reference,
            "unit_price": Decimal(unit_price),
            "stock": stock,
        }
        return part_id

    def add_client(self, email: str = "cliente@example.com", full_name: str = "Sami Ben Ali") -> dict:
        client = {"id": uuid.uuid4(), "user_id": uuid.uuid4(), "email": email, "full_name": full_name}
        self.clients[client["id"]] = client
        return client

    def add_reclamation(self, client: Optional[dict] = None, title: str = "Lave-linge en panne") -> uuid.UUID:
        client = client or self.add_client()
        reclamation_id = uuid.uuid4()
        self.reclamations[reclamation_id] = {
            "id": str(reclamation_id),
            "clientId": str(client["id"]),
            "clientName": client["full_name"],
            "clientEmail": client["email"],
            "title": title,
        }
        return reclamation_id

    def stock(self, part_id: uuid.UUID) -> int:
        return self.parts[part_id]["stock"]

    def calls(self, method: str, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]

    # ------------------------------------------------------------
    # Handler HTTP
    # ------------------------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        segments = request.url.path.strip("/").split("/")
        body = json.loads(request.content) if request.content else None

        if segments[:2] == ["api", "parts"]:
            return self._parts(request, segments[2:], body)
        if segments[:2] == ["api", "reclamations"]:
            reclamation = self.reclamations.get(uuid.UUID(segments[2]))
            return _ok(reclamation) if reclamation else _error(404, "Reclamation not found")
        if segments[:3] == ["api", "clients", "user"]:
            user_id = uuid.UUID(segments[3])
            client = next((c for c in self.clients.values() if c["user_id"] == user_id), None)
            return _ok(_client_json(client)) if client else _error(404, "Client not found")
        if segments[:2] == ["api", "clients"]:
            client = self.clients.get(uuid.UUID(segments[2]))
            return _ok(_client_json(client)) if client else _error(404, "Client not found")
        if segments == ["api", "notifications"]:
            if self.fail_notifications:
                return _error(503, "Notification service unavailable")
            self.notifications.append(body)
            return _ok({"id": str(uuid.uuid4())})
        return _error(404, "Unknown route")

    def _parts(self, request: httpx.Request, segments: list[str], body: Optional[dict]) -> httpx.Response:
        part = self.parts.get(uuid.UUID(segments[0]))
        if part is None:
            return _error(404, "Part not found")

        if request.method == "GET":
            return _ok({
                "id": segments[0],
                "reference": part["reference"],
                "name": part["name"],
                "unitPrice": str(part["unit_price"]),
                "stockQuantity": part["stock"],
            })

        key = request.headers.get("Idempotency-Key")
        if segments[1] == "deduct":
            if self.fail_deduct:
                return _error(500, "Inventory unavailable")
            if part["stock"] < body["quantity"]:
                return _error(400, "Insufficient stock")
            part["stock"] -= body["quantity"]
        elif segments[1] == "stock":
            if self.fail_restore:
                return _error(503, "Inventory unavailable")
            if self.honor_idempotency_key and key in self.applied_keys:
                return _ok()
            part["stock"] += body["quantityChange"]

        if key:
            self.applied_keys.add(key)
        return _ok()


def _client_json(client: dict) -> dict:
    return {
        "id": str(client["id"]),
        "userId": str(client["user_id"]),
        "fullName": client["full_name"],
        "email": client["email"],
    }


class FixedClock:
    """Orologio controllabile dai test."""

    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


# ============================================================
# Fixtures per configurazione e database
# ============================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        app_env="testing",
        database_url="sqlite+aiosqlite://",
        invoice_storage_path=str(tmp_path / "invoices"),
        staff_notification_user_ids=[STAFF_USER_ID],
        outbox_retry_enabled=False,
        outbox_max_attempts=3,
        currency_code="TND",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================
# Fixtures per collaboratori
# ============================================================


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
async def http_client(platform):
    async with httpx.AsyncClient(transport=httpx.MockTransport(platform.handler)) as client:
        yield client


@pytest.fixture
def gateway(http_client, test_settings) -> CrossServiceGateway:
    return CrossServiceGateway(
        authorization="Bearer test-token",
        http_client=http_client,
        settings=test_settings,
    )


@pytest.fixture
def email_sender():
    """EmailService simulato: ogni invio riesce."""
    sender = MagicMock(spec=EmailService)
    sender.send_intervention_scheduled = AsyncMock(return_value=True)
    sender.send_intervention_completed = AsyncMock(return_value=True)
    sender.send_invoice_ready = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def pdf_renderer():
    renderer = MagicMock(spec=PdfService)
    renderer.generate_invoice_pdf.return_value = b"%PDF-1.7 fattura di test"
    return renderer


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime.datetime(2026, 10, 15, 9, 30, tzinfo=datetime.timezone.utc))


@pytest.fixture
def orchestrator(gateway, email_sender, pdf_renderer, test_settings, clock) -> InterventionOrchestrator:
    return InterventionOrchestrator(
        gateway,
        email_service=email_sender,
        pdf_service=pdf_renderer,
        settings=test_settings,
        locks=InterventionLockRegistry(),
        clock=clock,
    )


@pytest.fixture
async def technician(db):
    technician = await technician_service.create(
        db,
        TechnicianCreate(
            full_name="Karim Trabelsi",
            email="karim.trabelsi@savora.example",
            user_id=uuid.uuid4(),
        ),
    )
    await db.commit()
    return technician


# ============================================================
# Fixtures per autenticazione
# ============================================================


def make_token(user_id: uuid.UUID, role: str) -> str:
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=30)
    return jwt.encode(
        {"sub": str(user_id), "role": role, "exp": expire, "type": "access"},
        app_settings.secret_key,
        algorithm=app_settings.jwt_algorithm,
    )


@pytest.fixture
def auth_headers():
    """Header Authorization per un utente e un ruolo."""
    def build(user_id: uuid.UUID, role: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}
    return build


@pytest.fixture
def staff_headers(auth_headers) -> dict[str, str]:
    return auth_headers(STAFF_USER_ID, app_settings.staff_role)
