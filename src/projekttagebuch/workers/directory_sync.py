"""
Directory resync worker.

Reads the directory every interval and writes the difference into the store.
A failed run is logged and the loop carries on with the next interval; only
the stop event ends it.

    stop = asyncio.Event()
    await run_directory_sync(store, YamlDirectorySource(path), interval=600, stop=stop)
"""

import asyncio

from loguru import logger

from ..services.directory import DirectoryError, DirectorySource, PersonSyncPlan
from ..services.postgres import DatabaseError, ProjectStore


async def sync_once(store: ProjectStore, source: DirectorySource) -> PersonSyncPlan:
    """One resync run. Errors propagate."""
    persons = await source.fetch_persons()
    plan = await store.sync_persons(persons)
    if plan.is_empty:
        logger.debug("Directory resync: nothing changed")
    else:
        logger.info(
            f"Directory resync: {len(plan.to_insert)} inserted, "
            f"{len(plan.to_update)} updated, {len(plan.to_delete)} removed"
        )
    return plan


async def run_directory_sync(
    store: ProjectStore,
    source: DirectorySource,
    interval: float,
    stop: asyncio.Event,
) -> None:
    """Resync until stop is set. The first run starts immediately."""
    logger.info(f"Directory resync started, interval {interval:.0f}s")
    while not stop.is_set():
        try:
            await sync_once(store, source)
        except (DirectoryError, DatabaseError) as e:
            logger.error(f"Directory resync failed: {e}")
        except Exception:
            logger.exception("Directory resync failed unexpectedly")

        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("Directory resync stopped")
