"""
Service per l'invio delle email transazionali (SendGrid + Jinja2)
Progetto: Savora SAV (Interventi)

Email gestite:
- Intervento pianificato
- Intervento completato (con importo o dicitura "gratuito")
- Fattura disponibile

Ogni metodo restituisce True se l'email è stata accettata dal provider.
Con email_enabled=False l'invio viene solo registrato nei log.
"""

import asyncio
import logging
import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
EMAIL_TEMPLATES_DIR = os.path.join(BASE_DIR, "templates", "emails")


class EmailService:
    """Service centralizzato per l'invio delle email ai clienti."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings
        self.env = Environment(
            loader=FileSystemLoader(EMAIL_TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )

    # ------------------------------------------------------------
    # Email per evento
    # ------------------------------------------------------------
    async def send_intervention_scheduled(
        self,
        to_email: str,
        client_name: str,
        reclamation_title: str,
        planned_date: str,
        technician_name: Optional[str] = None,
    ) -> bool:
        subject = f"🔧 Intervento pianificato - {reclamation_title}"
        html = self._render(
            "intervention_scheduled.html",
            client_name=client_name,
            reclamation_title=reclamation_title,
            planned_date=planned_date,
            technician_name=technician_name,
        )
        return await self._send_email(to_email, subject, html)

    async def send_intervention_completed(
        self,
        to_email: str,
        client_name: str,
        reclamation_title: str,
        is_free: bool,
        total_amount: str,
    ) -> bool:
        subject = f"✅ Intervento completato - {reclamation_title}"
        html = self._render(
            "intervention_completed.html",
            client_name=client_name,
            reclamation_title=reclamation_title,
            is_free=is_free,
            total_amount=total_amount,
        )
        return await self._send_email(to_email, subject, html)

    async def send_invoice_ready(
        self,
        to_email: str,
        client_name: str,
        invoice_number: str,
        total_amount: str,
    ) -> bool:
        subject = f"📄 Fattura {invoice_number} disponibile"
        html = self._render(
            "invoice_ready.html",
            client_name=client_name,
            invoice_number=invoice_number,
            total_amount=total_amount,
        )
        return await self._send_email(to_email, subject, html)

    # ------------------------------------------------------------
    # Metodi interni
    # ------------------------------------------------------------
    def _render(self, template_name: str, **context) -> str:
        template = self.env.get_template(template_name)
        return template.render(
            company_name=self.settings.invoice_company_name,
            currency=self.settings.currency_code,
            frontend_url=self.settings.frontend_url,
            **context,
        )

    async def _send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        if not self.settings.email_enabled:
            logger.info("Invio email disabilitato, email non inviata a %s: %s", to_email, subject)
            return True

        if not self.settings.sendgrid_api_key:
            logger.error("SENDGRID_API_KEY non configurata")
            return False

        # Il client SendGrid è sincrono: eseguito fuori dall'event loop
        return await asyncio.to_thread(self._deliver, to_email, subject, html_content)

    def _deliver(self, to_email: str, subject: str, html_content: str) -> bool:
        try:
            message = Mail(
                from_email=Email(self.settings.email_from_address, self.settings.email_from_name),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content),
            )
            response = SendGridAPIClient(self.settings.sendgrid_api_key).send(message)
        except Exception as e:
            logger.error("Errore invio email a %s: %s", to_email, e)
            return False

        if response.status_code in (200, 202):
            logger.info("Email inviata a %s: %s", to_email, subject)
            return True

        logger.error("Errore invio email a %s: status %s", to_email, response.status_code)
        return False


email_service = EmailService()
