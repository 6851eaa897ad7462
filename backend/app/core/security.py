"""
Modulo di sicurezza per autenticazione JWT
Progetto: Savora SAV (Interventi)

Verifica dei token JWT emessi dal servizio di autenticazione.
"""

from datetime import datetime, timezone

from fastapi import HTTPException, status
from jose import JWTError, jwt

from app.core.config import settings
from app.schemas.token import TokenPayload


def decode_token(token: str) -> TokenPayload:
    """
    Decodifica e valida un token JWT.

    Il subject può arrivare nel claim standard ``sub`` oppure nel claim
    ``uid`` usato dal servizio di autenticazione della piattaforma.

    Args:
        token: Token JWT da decodificare

    Returns:
        TokenPayload con i dati del token

    Raises:
        HTTPException: Se il token è invalido o scaduto
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token invalido o scaduto: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    subject = payload.get("sub") or payload.get("uid")
    role = payload.get("role")
    if not subject or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalido: subject o ruolo mancanti",
            headers={"WWW-Authenticate": "Bearer"},
        )

    exp = payload.get("exp")
    return TokenPayload(
        sub=str(subject),
        role=str(role),
        exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp is not None else None,
        type=payload.get("type") or "access",
    )


# Export delle funzioni
__all__ = [
    "decode_token",
]
