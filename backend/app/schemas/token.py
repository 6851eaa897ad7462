"""
Schemas Pydantic per l'autenticazione JWT
Progetto: Savora SAV (Interventi)

I token sono emessi dal servizio di autenticazione della piattaforma:
questo servizio si limita a verificarli e a ricavarne l'attore corrente.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """
    Schema per il payload contenuto nei token JWT.

    Attributes:
        sub: Subject - ID dell'utente come stringa
        role: Ruolo dell'utente
        exp: Expiration - Data/ora di scadenza
        type: Tipo di token ("access" o "refresh")
    """

    sub: str = Field(..., description="ID utente")
    role: str = Field(..., description="Ruolo dell'utente")
    exp: Optional[datetime] = Field(None, description="Data/ora di scadenza")
    type: str = Field(default="access", description="Tipo di token (access/refresh)")


class Actor(BaseModel):
    """
    Utente che esegue la richiesta corrente.

    Attributes:
        user_id: ID dell'utente autenticato
        role: Ruolo dell'utente
        token: Token grezzo, inoltrato ai servizi remoti
    """

    user_id: uuid.UUID
    role: str
    token: str = Field(..., repr=False)

    @property
    def authorization(self) -> str:
        """Valore dell'header Authorization da inoltrare."""
        return f"Bearer {self.token}"


# Export degli schemas
__all__ = [
    "TokenPayload",
    "Actor",
]
