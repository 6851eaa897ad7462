"""
Lock applicativi per la serializzazione delle operazioni
Progetto: Savora SAV (Interventi)

Le operazioni che modificano lo stesso intervento (ricambi, manodopera,
stato, fatturazione) vengono eseguite una alla volta all'interno del
processo. Su PostgreSQL il lock di riga (SELECT ... FOR UPDATE) e i vincoli
unique completano la protezione tra processi diversi.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator


class InterventionLockRegistry:
    """Registro di asyncio.Lock indicizzati per id intervento."""

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._waiters: dict[uuid.UUID, int] = {}

    @asynccontextmanager
    async def acquire(self, intervention_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(intervention_id, asyncio.Lock())
        self._waiters[intervention_id] = self._waiters.get(intervention_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[intervention_id] -= 1
            if self._waiters[intervention_id] == 0:
                # Nessuno in attesa: il lock può essere rimosso dal registro
                del self._waiters[intervention_id]
                self._locks.pop(intervention_id, None)

    def __len__(self) -> int:
        return len(self._locks)


intervention_locks = InterventionLockRegistry()

# Serializza l'assegnazione dei numeri fattura nel processo
invoice_number_lock = asyncio.Lock()
