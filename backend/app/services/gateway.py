"""
Gateway verso i servizi remoti della piattaforma
Progetto: Savora SAV (Interventi)

Client HTTP tipizzato per:
- Magazzino (ricambi: lettura, scarico, ricarico)
- Reclami
- Anagrafica clienti
- Notifiche in-app

Ogni risposta non 2xx, errore di trasporto o payload illeggibile viene
registrato nei log e tradotto in None/False: le decisioni restano ai
chiamanti. L'header Authorization del chiamante viene inoltrato a ogni
richiesta.
"""

import logging
import uuid
from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings, settings as default_settings
from app.schemas.remote import (
    ClientInfo,
    NotificationRequest,
    PartSnapshot,
    ReclamationInfo,
    StockAdjustRequest,
    StockDeductRequest,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class CrossServiceGateway:
    """
    Client dei servizi remoti per una singola richiesta (o job).

    Args:
        authorization: Valore dell'header Authorization da inoltrare
        http_client: Client condiviso (ciclo di vita gestito dall'app);
            se assente viene aperto un client per ogni chiamata
        settings: Configurazione (URL base e timeout)
    """

    def __init__(
        self,
        authorization: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.authorization = authorization
        self._client = http_client
        self.timeout = httpx.Timeout(self.settings.remote_timeout_seconds)

    # ------------------------------------------------------------
    # Magazzino
    # ------------------------------------------------------------
    async def get_part(self, part_id: uuid.UUID) -> Optional[PartSnapshot]:
        """Legge nome, riferimento, prezzo e giacenza di un ricambio."""
        url = f"{self.settings.inventory_service_url}/api/parts/{part_id}"
        return await self._get_model(url, PartSnapshot)

    async def deduct_stock(
        self,
        part_id: uuid.UUID,
        quantity: int,
        intervention_id: uuid.UUID,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """Scarica `quantity` pezzi dal magazzino per l'intervento."""
        url = f"{self.settings.inventory_service_url}/api/parts/{part_id}/deduct"
        body = StockDeductRequest(quantity=quantity, intervention_id=intervention_id)
        return await self._post(url, body, idempotency_key)

    async def restore_stock(
        self,
        part_id: uuid.UUID,
        quantity: int,
        reason: str,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """Ricarica `quantity` pezzi in magazzino."""
        url = f"{self.settings.inventory_service_url}/api/parts/{part_id}/stock"
        body = StockAdjustRequest(quantity_change=quantity, reason=reason)
        return await self._post(url, body, idempotency_key)

    # ------------------------------------------------------------
    # Reclami e clienti
    # ------------------------------------------------------------
    async def get_reclamation(self, reclamation_id: uuid.UUID) -> Optional[ReclamationInfo]:
        url = f"{self.settings.reclamations_service_url}/api/reclamations/{reclamation_id}"
        return await self._get_model(url, ReclamationInfo)

    async def get_client(self, client_id: uuid.UUID) -> Optional[ClientInfo]:
        url = f"{self.settings.clients_service_url}/api/clients/{client_id}"
        return await self._get_model(url, ClientInfo)

    async def get_client_by_user_id(self, user_id: uuid.UUID) -> Optional[ClientInfo]:
        url = f"{self.settings.clients_service_url}/api/clients/user/{user_id}"
        return await self._get_model(url, ClientInfo)

    # ------------------------------------------------------------
    # Notifiche
    # ------------------------------------------------------------
    async def send_notification(self, notification: NotificationRequest) -> bool:
        url = f"{self.settings.notifications_service_url}/api/notifications"
        return await self._post(url, notification)

    # ------------------------------------------------------------
    # Metodi interni
    # ------------------------------------------------------------
    def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.authorization:
            headers["Authorization"] = self.authorization
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        json: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Optional[httpx.Response]:
        headers = self._headers(idempotency_key)
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, json=json, headers=headers, timeout=self.timeout
                )
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Chiamata %s %s fallita: %s", method, url, e)
            return None

    async def _get_model(self, url: str, model: Type[ModelT]) -> Optional[ModelT]:
        response = await self._send("GET", url)
        if response is None:
            return None
        if not response.is_success:
            logger.warning("GET %s ha risposto %s", url, response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("GET %s: risposta non JSON", url)
            return None

        data = _unwrap(payload)
        if data is None:
            logger.warning("GET %s: risposta senza dati", url)
            return None

        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("GET %s: payload non valido (%s)", url, e)
            return None

    async def _post(
        self,
        url: str,
        body: BaseModel,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        payload = body.model_dump(mode="json", by_alias=True)
        response = await self._send("POST", url, json=payload, idempotency_key=idempotency_key)
        if response is None:
            return False
        if not response.is_success:
            logger.warning("POST %s ha risposto %s", url, response.status_code)
            return False

        # Un 2xx con {"success": false} è comunque un rifiuto
        try:
            result = response.json()
        except ValueError:
            return True
        if isinstance(result, dict) and result.get("success") is False:
            logger.warning("POST %s rifiutato: %s", url, result.get("message"))
            return False
        return True


def _unwrap(payload: Any) -> Optional[Any]:
    """Estrae `data` dalla busta {success, data, message}, se presente."""
    if isinstance(payload, dict) and "success" in payload and "data" in payload:
        if not payload.get("success"):
            return None
        return payload.get("data")
    return payload
