"""
Tests for OutboxRetrier e RetryScheduler.
"""

import datetime
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from app.models.outbox import OutboundMessage, StockCompensation
from app.services.compensation_service import (
    STATUS_ABANDONED,
    STATUS_IN_FLIGHT,
    STATUS_PENDING,
    STATUS_RESOLVED,
    CompensationLog,
)
from app.services.notification_dispatcher import email_message, notification_message
from app.services.retry_service import OutboxRetrier, RetryScheduler


@pytest.fixture
def retrier(session_factory, gateway, email_sender, test_settings) -> OutboxRetrier:
    return OutboxRetrier(
        session_factory=session_factory,
        gateway_factory=lambda: gateway,
        email_sender=email_sender,
        settings=test_settings,
    )


async def pending_restore(db, gateway, part_id, quantity: int = 2, attempts: int = 1) -> StockCompensation:
    record = CompensationLog(gateway).enqueue(
        db,
        intervention_id=uuid.uuid4(),
        part_id=part_id,
        quantity=quantity,
        reason="Ripristino di test",
    )
    record.attempts = attempts
    await db.commit()
    return record


async def reload(db, model, record_id):
    result = await db.execute(
        select(model).where(model.id == record_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ============================================================
# Compensazioni
# ============================================================


class TestRetryCompensations:
    """Tests per la riesecuzione delle compensazioni pendenti."""

    async def test_pending_compensation_is_resolved(self, db, gateway, platform, retrier):
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, quantity=2)

        report = await retrier.run_once(db)

        assert report.compensations_resolved == 1
        assert platform.stock(part_id) == 7
        record = await reload(db, StockCompensation, record.id)
        assert record.status == STATUS_RESOLVED
        assert record.attempts == 2
        assert record.resolved_at is not None

    async def test_idempotency_key_prevents_double_restore(self, db, gateway, platform, retrier):
        """Test un ripristino già applicato dal magazzino non viene applicato due volte."""
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, quantity=2)
        platform.applied_keys.add(record.idempotency_key)

        await retrier.run_once(db)

        assert platform.stock(part_id) == 5
        (request,) = platform.calls("POST", "/stock")
        assert request.headers["Idempotency-Key"] == record.idempotency_key

    async def test_failure_below_limit_stays_pending(self, db, gateway, platform, retrier):
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, attempts=1)
        platform.fail_restore = True

        report = await retrier.run_once(db)

        assert report.compensations_pending == 1
        record = await reload(db, StockCompensation, record.id)
        assert record.status == STATUS_PENDING
        assert record.attempts == 2

    async def test_abandoned_at_max_attempts(self, db, gateway, platform, retrier):
        """Test dopo outbox_max_attempts tentativi l'intento viene abbandonato."""
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, attempts=2)
        platform.fail_restore = True

        report = await retrier.run_once(db)

        assert report.compensations_abandoned == 1
        record = await reload(db, StockCompensation, record.id)
        assert record.status == STATUS_ABANDONED
        assert record.attempts == 3

        # Un intento abbandonato non viene più ritentato
        platform.fail_restore = False
        report = await retrier.run_once(db)
        assert report.compensations_resolved == 0
        assert platform.stock(part_id) == 5

    async def test_run_once_opens_own_session(self, db, gateway, platform, retrier):
        part_id = platform.add_part(stock=5)
        await pending_restore(db, gateway, part_id, quantity=1)

        report = await retrier.run_once()

        assert report.compensations_resolved == 1
        assert platform.stock(part_id) == 6

    async def test_in_flight_compensation_is_skipped(self, db, gateway, platform, retrier):
        """Test un intento reclamato da una richiesta in corso non viene rieseguito."""
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, quantity=2)
        record.status = STATUS_IN_FLIGHT
        record.claimed_at = datetime.datetime.now(datetime.timezone.utc)
        await db.commit()

        report = await retrier.run_once(db)

        assert report.compensations_resolved == 0
        assert platform.calls("POST", "/stock") == []
        assert platform.stock(part_id) == 5

    async def test_expired_claim_is_retried(self, db, gateway, platform, retrier):
        """Test un reclamo scaduto (processo interrotto) torna ritentabile."""
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, quantity=2)
        record.status = STATUS_IN_FLIGHT
        record.claimed_at = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=1)
        await db.commit()

        report = await retrier.run_once(db)

        assert report.compensations_resolved == 1
        assert platform.stock(part_id) == 7
        record = await reload(db, StockCompensation, record.id)
        assert record.status == STATUS_RESOLVED

    async def test_claim_is_exclusive(self, db, gateway, platform):
        part_id = platform.add_part(stock=5)
        record = await pending_restore(db, gateway, part_id, attempts=0)
        compensations = CompensationLog(gateway)

        assert await compensations.claim(db, record) is True
        assert await compensations.claim(db, record) is False
        assert record.status == STATUS_IN_FLIGHT
        assert record.attempts == 1


# ============================================================
# Messaggi
# ============================================================


class TestRetryMessages:
    """Tests per la riconsegna dei messaggi non consegnati."""

    async def test_notification_redelivered(self, db, platform, retrier):
        message = notification_message(uuid.uuid4(), "Titolo", "Messaggio", "NewIntervention", uuid.uuid4())
        message.attempts = 1
        db.add(message)
        await db.commit()

        report = await retrier.run_once(db)

        assert report.messages_delivered == 1
        assert [n["notificationType"] for n in platform.notifications] == ["NewIntervention"]
        message = await reload(db, OutboundMessage, message.id)
        assert message.status == "delivered"
        assert message.delivered_at is not None

    async def test_email_redelivered(self, db, retrier, email_sender):
        message = email_message(
            "invoice_ready",
            to_email="cliente@example.com",
            client_name="Sami Ben Ali",
            invoice_number="INV-202610-0001",
            total_amount="195.00",
        )
        message.attempts = 1
        db.add(message)
        await db.commit()

        report = await retrier.run_once(db)

        assert report.messages_delivered == 1
        email_sender.send_invoice_ready.assert_awaited_once_with(
            to_email="cliente@example.com",
            client_name="Sami Ben Ali",
            invoice_number="INV-202610-0001",
            total_amount="195.00",
        )

    async def test_message_abandoned_at_max_attempts(self, db, platform, retrier):
        platform.fail_notifications = True
        message = notification_message(uuid.uuid4(), "Titolo", "Messaggio", "NewIntervention")
        message.attempts = 2
        db.add(message)
        await db.commit()

        report = await retrier.run_once(db)

        assert report.messages_abandoned == 1
        message = await reload(db, OutboundMessage, message.id)
        assert message.status == "abandoned"


# ============================================================
# Scheduler
# ============================================================


class TestRetryScheduler:
    """Tests per il job periodico."""

    async def test_start_registers_job(self, test_settings):
        scheduler = RetryScheduler(retrier=MagicMock(spec=OutboxRetrier), settings=test_settings)

        scheduler.start()
        try:
            job = scheduler.scheduler.get_job(RetryScheduler.JOB_ID)
            assert job is not None
            assert job.trigger.interval.total_seconds() == test_settings.outbox_retry_interval_seconds
        finally:
            scheduler.stop()

        assert scheduler.scheduler.running is False

    async def test_run_job_swallows_errors(self, test_settings):
        retrier = MagicMock(spec=OutboxRetrier)
        retrier.run_once = AsyncMock(side_effect=RuntimeError("database non raggiungibile"))
        scheduler = RetryScheduler(retrier=retrier, settings=test_settings)

        await scheduler.run_job()

        retrier.run_once.assert_awaited_once()

    def test_stop_without_start(self, test_settings):
        RetryScheduler(retrier=MagicMock(spec=OutboxRetrier), settings=test_settings).stop()
