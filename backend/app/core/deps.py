"""
Dependency Injection per autenticazione e servizi
Progetto: Savora SAV (Interventi)

Funzioni di dependency injection per:
- attore corrente ricavato dal token JWT
- verifica del ruolo
- gateway verso i servizi remoti (con le credenziali del chiamante)
- orchestratore degli interventi
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.security import decode_token
from app.schemas.token import Actor
from app.services.gateway import CrossServiceGateway
from app.services.orchestrator import InterventionOrchestrator

# Bearer scheme - estrae il token dall'header Authorization
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """
    Dependency per ottenere l'attore corrente dal token JWT.

    Returns:
        Actor: ID utente, ruolo e token da inoltrare ai servizi remoti

    Raises:
        HTTPException 401: Se il token manca, è invalido o scaduto
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token di autenticazione non fornito",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_token(credentials.credentials)

    if token_data.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token di refresh non valido per questa operazione",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = UUID(token_data.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="ID utente invalido nel token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(user_id=user_id, role=token_data.role, token=credentials.credentials)


def require_role(*allowed_roles: str):
    """
    Factory function per creare una dependency che verifica il ruolo.

    Example:
        @router.post("/staff-only")
        async def staff_endpoint(actor: Actor = Depends(require_role("ResponsableSAV"))):
            ...
    """
    async def role_checker(
        actor: Annotated[Actor, Depends(get_current_actor)]
    ) -> Actor:
        if actor.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Accesso negato. Ruolo richiesto: {', '.join(allowed_roles)}",
            )
        return actor

    return role_checker


# Type aliases per uso comune
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
StaffActor = Annotated[Actor, Depends(require_role(settings.staff_role))]


def get_gateway(request: Request, actor: CurrentActor) -> CrossServiceGateway:
    """Gateway che inoltra il token del chiamante, sul client HTTP condiviso dall'app."""
    return CrossServiceGateway(
        authorization=actor.authorization,
        http_client=getattr(request.app.state, "http_client", None),
    )


def get_orchestrator(
    gateway: Annotated[CrossServiceGateway, Depends(get_gateway)],
) -> InterventionOrchestrator:
    return InterventionOrchestrator(gateway)


Gateway = Annotated[CrossServiceGateway, Depends(get_gateway)]
Orchestrator = Annotated[InterventionOrchestrator, Depends(get_orchestrator)]


# Export
__all__ = [
    "get_current_actor",
    "require_role",
    "get_gateway",
    "get_orchestrator",
    "bearer_scheme",
    "CurrentActor",
    "StaffActor",
    "Gateway",
    "Orchestrator",
]
