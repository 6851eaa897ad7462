"""
Main Entry Point - FastAPI Application
Progetto: Savora SAV (Interventi)

Configura l'applicazione FastAPI con middleware, router e lifecycle.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import close_db, init_db
from app.core.exceptions import AppException
from app.services.retry_service import RetryScheduler

# ------------------------------------------------------------
# Configurazione Logging
# ------------------------------------------------------------
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Lifespan Handler
# ------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestisce il ciclo di vita dell'applicazione.

    - Startup: connessione al database, client HTTP condiviso, job di ritentativo
    - Shutdown: arresto del job, chiusura del client e delle connessioni database
    """
    # Startup
    logger.info("Avvio %s v%s", settings.app_name, settings.app_version)
    await init_db()
    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.remote_timeout_seconds),
    )

    scheduler = None
    if settings.outbox_retry_enabled:
        scheduler = RetryScheduler()
        scheduler.start()
    logger.info("Applicazione avviata con successo")

    yield

    # Shutdown
    logger.info("Arresto applicazione in corso...")
    if scheduler is not None:
        scheduler.stop()
    await app.state.http_client.aclose()
    await close_db()
    logger.info("Applicazione arrestata")


# ------------------------------------------------------------
# FastAPI Application
# ------------------------------------------------------------
app = FastAPI(
    title=settings.app_name,
    description="Savora SAV - Interventi, ricambi, manodopera e fatturazione",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# ------------------------------------------------------------
# Exception Handlers
# ------------------------------------------------------------
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Gestore per le eccezioni applicative.

    NotFoundError → 404, BusinessValidationError / RemoteCallFailure → 400,
    AuthorizationError → 403, ConflictError → 409.
    """
    if exc.status_code >= 500:
        logger.error("Errore applicativo %s: %s", exc.error_code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Gestore per i dati di input non validi (formato, tipo, intervalli).

    Risponde 400 con lo stesso corpo delle violazioni di business; i
    dettagli dei campi sono in extra.errors.
    """
    errors = jsonable_encoder(exc.errors())
    fields = ", ".join(
        ".".join(str(part) for part in error.get("loc", ()) if part != "body") for error in errors
    )
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Dati non validi: {fields}" if fields else "Dati non validi",
            "error_code": "VALIDATION_ERROR",
            "extra": {"errors": errors},
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Gestore generico per tutte le eccezioni non catturate.

    Converte l'eccezione in risposta HTTP 500 e logga l'errore.
    """
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Errore interno del server", "error_code": "INTERNAL_ERROR"},
    )


# ------------------------------------------------------------
# Middleware CORS
# ------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------
@app.get(
    "/health",
    name="Health Check",
    summary="Controlla lo stato dell'applicazione",
    tags=["System"],
)
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.app_env,
    }


# ------------------------------------------------------------
# Router
# ------------------------------------------------------------
from app.api.v1 import api_v1_router

app.include_router(api_v1_router)
