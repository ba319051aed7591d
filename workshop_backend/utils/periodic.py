"""
Boucle de tâche périodique lancée par le lifespan (relance des notifications,
expiration des inscriptions). Une itération en échec est loggée, la boucle continue.
"""
import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# module workshop_backend.utils.periodic
async def run_periodic(name: str, interval_seconds: float, step: Callable[[], Awaitable[object]]) -> None:
    logger.info("periodic task %s started interval=%ss", name, interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await step()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("periodic task %s iteration failed", name)

def start_periodic(name: str, interval_seconds: float, step: Callable[[], Awaitable[object]]):
    """Crée la tâche si l'intervalle est > 0, sinon None (tâche désactivée)."""
    if not interval_seconds or interval_seconds <= 0:
        return None
    return asyncio.create_task(run_periodic(name, interval_seconds, step), name=name)
