"""
Tests for EmailService: rendering dei template e invio tramite SendGrid.
"""

from unittest.mock import MagicMock, patch

import pytest

from app.services.email_service import EmailService


@pytest.fixture
def disabled_service(test_settings) -> EmailService:
    return EmailService(test_settings.model_copy(update={"email_enabled": False}))


@pytest.fixture
def enabled_service(test_settings) -> EmailService:
    return EmailService(
        test_settings.model_copy(update={"email_enabled": True, "sendgrid_api_key": "SG.test-key"})
    )


def sent_html(send_mock) -> str:
    _, _, html = send_mock.call_args.args
    return html


# ============================================================
# Template
# ============================================================


class TestEmailTemplates:
    """Tests per il rendering delle email con invio disabilitato."""

    async def test_intervention_scheduled(self, disabled_service):
        with patch.object(disabled_service, "_send_email", wraps=disabled_service._send_email) as send, \
                patch("app.services.email_service.SendGridAPIClient") as client_cls:
            sent = await disabled_service.send_intervention_scheduled(
                "cliente@example.com",
                "Sami Ben Ali",
                "Lave-linge en panne",
                "20/10/2026 10:00",
                technician_name="Karim Trabelsi",
            )

        assert sent is True
        client_cls.assert_not_called()
        to_email, subject, html = send.call_args.args
        assert to_email == "cliente@example.com"
        assert "Lave-linge en panne" in subject
        assert "Gentile Sami Ben Ali" in html
        assert "20/10/2026 10:00" in html
        assert "Tecnico:</strong> Karim Trabelsi" in html

    async def test_intervention_scheduled_without_technician(self, disabled_service):
        with patch.object(disabled_service, "_send_email", wraps=disabled_service._send_email) as send:
            await disabled_service.send_intervention_scheduled(
                "cliente@example.com", "", "Frigo", "21/10/2026 09:00"
            )

        html = sent_html(send)
        assert "Gentile cliente" in html
        assert "Tecnico" not in html

    async def test_intervention_completed_with_amount(self, disabled_service):
        with patch.object(disabled_service, "_send_email", wraps=disabled_service._send_email) as send:
            await disabled_service.send_intervention_completed(
                "cliente@example.com", "Sami Ben Ali", "Lave-linge en panne", False, "195.00"
            )

        html = sent_html(send)
        assert "195.00 TND" in html
        assert "gratuito" not in html

    async def test_intervention_completed_free(self, disabled_service):
        with patch.object(disabled_service, "_send_email", wraps=disabled_service._send_email) as send:
            await disabled_service.send_intervention_completed(
                "cliente@example.com", "Sami Ben Ali", "Lave-linge en panne", True, "0.00"
            )

        html = sent_html(send)
        assert "intervento gratuito (garanzia)" in html
        assert "0.00 TND" not in html

    async def test_invoice_ready(self, disabled_service, test_settings):
        with patch.object(disabled_service, "_send_email", wraps=disabled_service._send_email) as send:
            sent = await disabled_service.send_invoice_ready(
                "cliente@example.com", "Sami Ben Ali", "INV-202610-0001", "195.00"
            )

        assert sent is True
        _, subject, html = send.call_args.args
        assert "INV-202610-0001" in subject
        assert "INV-202610-0001" in html
        assert "195.00 TND" in html
        assert test_settings.frontend_url in html

    async def test_client_name_is_escaped(self, disabled_service):
        with patch.object(disabled_service, "_send_email", wraps=disabled_service._send_email) as send:
            await disabled_service.send_invoice_ready(
                "cliente@example.com", "<script>x</script>", "INV-202610-0002", "10.00"
            )

        assert "<script>" not in sent_html(send)


# ============================================================
# Invio SendGrid
# ============================================================


class TestSendGridDelivery:
    """Tests per la consegna tramite il client SendGrid."""

    @pytest.mark.parametrize("status_code, expected", [(202, True), (200, True), (500, False), (401, False)])
    async def test_status_code_handling(self, enabled_service, status_code, expected):
        with patch("app.services.email_service.SendGridAPIClient") as client_cls:
            client_cls.return_value.send.return_value = MagicMock(status_code=status_code)

            sent = await enabled_service.send_invoice_ready(
                "cliente@example.com", "Sami Ben Ali", "INV-202610-0001", "195.00"
            )

        assert sent is expected
        client_cls.assert_called_once_with("SG.test-key")
        (message,) = client_cls.return_value.send.call_args.args
        assert message.subject.subject == "📄 Fattura INV-202610-0001 disponibile"

    async def test_client_error_returns_false(self, enabled_service):
        with patch("app.services.email_service.SendGridAPIClient") as client_cls:
            client_cls.return_value.send.side_effect = RuntimeError("connection reset")

            sent = await enabled_service.send_invoice_ready(
                "cliente@example.com", "Sami Ben Ali", "INV-202610-0001", "195.00"
            )

        assert sent is False

    async def test_missing_api_key(self, test_settings):
        service = EmailService(
            test_settings.model_copy(update={"email_enabled": True, "sendgrid_api_key": None})
        )

        with patch("app.services.email_service.SendGridAPIClient") as client_cls:
            sent = await service.send_invoice_ready(
                "cliente@example.com", "Sami Ben Ali", "INV-202610-0001", "195.00"
            )

        assert sent is False
        client_cls.assert_not_called()
