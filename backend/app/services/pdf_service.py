"""
Service per la generazione di PDF con WeasyPrint + Jinja2.
Progetto: Savora SAV (Interventi)
"""

import logging
import os
from datetime import date
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import Settings, settings as default_settings
from app.models.intervention import Intervention
from app.models.invoice import Invoice

logger = logging.getLogger(__name__)

# Path alle cartelle templates
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")


# Lazy import of weasyprint to avoid startup errors if system libraries aren't available
def _get_weasyprint():
    """Lazy import of weasyprint to handle missing Pango/GTK libraries gracefully."""
    try:
        from weasyprint import HTML, CSS
        return HTML, CSS
    except OSError as e:
        raise RuntimeError(
            "WeasyPrint dependencies not found. Please install Pango/GTK libraries."
        ) from e


class PdfService:
    """
    Genera PDF da template HTML/CSS usando WeasyPrint + Jinja2.

    Il chiamante passa l'intervento con ricambi, manodopera e tecnico già
    caricati (None per le fatture da ordine).
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )

    def build_invoice_context(
        self,
        invoice: Invoice,
        intervention: Optional[Intervention] = None,
        order_number: Optional[str] = None,
    ) -> dict:
        """Dati passati al template della fattura."""
        parts = list(intervention.parts_used) if intervention is not None else []
        labor = intervention.labor if intervention is not None else None
        technician = intervention.technician if intervention is not None else None

        return {
            "company_name": self.settings.invoice_company_name,
            "company_address": self.settings.invoice_address,
            "company_phone": self.settings.invoice_phone,
            "company_email": self.settings.invoice_email,
            "currency": self.settings.currency_code,
            "invoice": invoice,
            "invoice_date": invoice.created_at.strftime("%d/%m/%Y") if invoice.created_at else "",
            "intervention": intervention,
            "technician_name": technician.full_name if technician is not None else None,
            "order_number": order_number,
            "parts": parts,
            "labor": labor,
            "oggi": date.today().strftime("%d/%m/%Y"),
        }

    def render_invoice_html(
        self,
        invoice: Invoice,
        intervention: Optional[Intervention] = None,
        order_number: Optional[str] = None,
    ) -> str:
        template = self.env.get_template("invoice_template.html")
        return template.render(self.build_invoice_context(invoice, intervention, order_number))

    def generate_invoice_pdf(
        self,
        invoice: Invoice,
        intervention: Optional[Intervention] = None,
        order_number: Optional[str] = None,
    ) -> bytes:
        """
        Genera il PDF di una fattura.

        Returns:
            bytes: PDF binario pronto per il download
        """
        HTML, CSS = _get_weasyprint()

        html_out = self.render_invoice_html(invoice, intervention, order_number)
        css = CSS(filename=os.path.join(TEMPLATES_DIR, "invoice_style.css"))

        return HTML(string=html_out, base_url=TEMPLATES_DIR).write_pdf(stylesheets=[css])


pdf_service = PdfService()
