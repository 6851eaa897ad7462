"""
Ricrea da zero lo schema del database interventi (sviluppo/test).

Uso:
    python reset_db.py          # chiede conferma
    python reset_db.py --yes    # senza conferma
"""

import asyncio
import os
import sys

# Aggiungi backend/ alla PYTHONPATH per importare app.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app.core.config import settings
from app.core.database import engine
from app.models import Base


async def reset() -> None:
    tables = ", ".join(sorted(Base.metadata.tables))
    print(f"Connessione a {settings.app_env}: ricreazione tabelle ({tables})...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("Schema interventi ricreato. Compensazioni e messaggi pendenti sono stati eliminati.")


if __name__ == "__main__":
    if settings.is_production:
        sys.exit("Reset non consentito in produzione")
    if "--yes" not in sys.argv and input("Eliminare tutti i dati? [s/N] ").strip().lower() != "s":
        sys.exit("Operazione annullata")
    asyncio.run(reset())
