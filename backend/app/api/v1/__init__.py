"""
API v1 Routes
Progetto: Savora SAV (Interventi)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import compensations, interventions, invoices, technicians

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(interventions.router)
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(technicians.router)
api_v1_router.include_router(compensations.router)

# Esportazione
__all__ = ["api_v1_router"]
