"""
Eccezioni Custom per l'applicazione.
Progetto: Savora SAV (Interventi)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori. Ogni operazione di business fallisce
sollevando una di queste eccezioni; gli handler registrati in main.py
le traducono nella risposta HTTP corrispondente.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti dal nostro handler → 400 VALIDATION_ERROR)
- BusinessValidationError: violazioni delle regole di business (gestiti dal nostro handler → 400)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "RemoteCallFailure",
    "CompensationFailure",
    "ConflictError",
    "AuthorizationError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    default_detail: str = "Errore interno del server"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato (default: quello di classe)
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail if detail is not None else self.default_detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Corpo JSON della risposta di errore."""
        body: Dict[str, Any] = {"detail": self.detail, "error_code": self.error_code}
        if self.extra:
            body["extra"] = self.extra
        return body


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un'entità cercata non esiste nel database
    (o è stata eliminata logicamente).
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"
    default_detail: str = "Risorsa non trovata"


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "Stock insufficiente. Disponibile: 2, Richiesto: 3"
        - "Esiste già una fattura per questo intervento"
        - "Impossibile fatturare un intervento non completato"
        - "Transizione di stato non consentita"
    """

    status_code: int = 400
    error_code: str = "BUSINESS_VALIDATION_ERROR"
    default_detail: str = "Validazione dati fallita"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


class RemoteCallFailure(AppException):
    """
    Eccezione sollevata quando un servizio remoto rifiuta o non esegue
    un'operazione necessaria (es. scarico di magazzino).

    Nessuna scrittura locale è stata effettuata quando viene sollevata.
    """

    status_code: int = 400
    error_code: str = "REMOTE_CALL_FAILED"
    default_detail: str = "Errore di comunicazione con un servizio remoto"


class CompensationFailure(AppException):
    """
    Eccezione interna: un'azione compensativa (es. ripristino stock) non è
    andata a buon fine.

    Non viene mai restituita al chiamante: viene registrata nei log e
    l'intento resta in coda per il job di ritentativo.
    """

    status_code: int = 500
    error_code: str = "COMPENSATION_FAILED"
    default_detail: str = "Azione compensativa non riuscita"


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Utilizzata quando un'operazione concorrente ha violato un vincolo
    di unicità (es. numero fattura già assegnato).
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"
    default_detail: str = "Conflitto di stato"


class AuthorizationError(AppException):
    """
    Eccezione sollevata per accesso non autorizzato.

    Esempi di utilizzo:
        - "Non hai accesso a questo intervento"
        - "Operazione riservata al personale SAV"
    """

    status_code: int = 403
    error_code: str = "FORBIDDEN"
    default_detail: str = "Accesso non autorizzato"
