"""Pull-then-reconcile sync operation and its background scheduler."""

import asyncio
import logging
from pathlib import Path

from devjournal.core.errors import JournalError
from devjournal.core.models import SyncResult
from devjournal.core.reconciler import reconcile
from devjournal.core.registry import PageRegistry
from devjournal.core.repository import GitRepository

logger = logging.getLogger(__name__)


class SyncService:
    """Runs pull and reconcile as one critical section per working copy.

    Reconciliation never observes a tree that another pull is still
    rewriting, because both steps happen under the same lock.
    """

    def __init__(self, repository: GitRepository, registry: PageRegistry, content_dir: Path):
        self.repository = repository
        self.registry = registry
        self.content_dir = Path(content_dir)
        self._lock = asyncio.Lock()

    async def sync(self, initial: bool = False) -> SyncResult:
        """Update the working copy, then reconcile it into the registry.

        With ``initial`` the working copy is cloned if absent (startup);
        otherwise it is pulled. Raises TransportError or WalkError.
        """
        async with self._lock:
            result = SyncResult()
            if initial:
                result.cloned = await self.repository.ensure()
            else:
                await self.repository.pull()
            logger.info("Content repository updated.")

            result.reconcile = await asyncio.to_thread(
                reconcile, self.content_dir, self.registry
            )
            return result


class SyncScheduler:
    """Single-slot queue of background syncs.

    At most one sync runs and at most one waits. Requests made while a sync
    is waiting share its future; a request made while a sync runs claims the
    waiting slot, so the last reconcile always follows the latest pull.
    """

    def __init__(self, service: SyncService):
        self.service = service
        self._pending: asyncio.Future | None = None
        self._worker: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def schedule(self) -> asyncio.Future:
        """Request a sync and return a future for its result.

        The future resolves to a SyncResult, or to None if the sync failed.
        Must be called from within the running event loop.
        """
        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_future()
            if not self.busy:
                self._worker = asyncio.create_task(self._drain())
        return self._pending

    async def _drain(self) -> None:
        while self._pending is not None:
            waiter, self._pending = self._pending, None
            result = await self._run_once()
            if not waiter.done():
                waiter.set_result(result)

    async def _run_once(self) -> SyncResult | None:
        logger.info("Starting scheduled content sync")
        try:
            result = await self.service.sync()
        except JournalError as exc:
            logger.error("Failed to sync content: %s", exc)
            return None
        except Exception:
            logger.exception("Unexpected error during content sync")
            return None
        logger.info("Content sync complete.")
        return result

    async def wait_idle(self) -> None:
        """Wait until no sync is running or waiting."""
        while self.busy:
            await asyncio.shield(self._worker)
