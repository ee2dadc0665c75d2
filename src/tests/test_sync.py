"""Tests for the serialized sync operation and its scheduler."""

import asyncio

import pytest

from devjournal.core.errors import TransportError, WalkError
from devjournal.core.models import SyncResult
from devjournal.core.registry import create_registry
from devjournal.core.sync import SyncScheduler, SyncService


class FakeRepository:
    """Working copy double that applies queued file changes on pull."""

    def __init__(self, path, fail=False):
        self.path = path
        self.fail = fail
        self.incoming: list[dict[str, str]] = []
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    def exists(self):
        return self.path.exists()

    async def _apply(self, name):
        self.calls.append(name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            if self.fail:
                raise TransportError(["git", name], "fatal: could not read from remote")
            self.path.mkdir(parents=True, exist_ok=True)
            if self.incoming:
                for rel, content in self.incoming.pop(0).items():
                    target = self.path / rel
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_text(content)
        finally:
            self.active -= 1

    async def pull(self):
        await self._apply("pull")

    async def ensure(self):
        cloned = not self.exists()
        await self._apply("clone" if cloned else "pull")
        return cloned


@pytest.fixture
def registry(tmp_path):
    return create_registry(tmp_path / "test.db")


@pytest.fixture
def repository(tmp_path):
    return FakeRepository(tmp_path / "content")


@pytest.fixture
def service(repository, registry, tmp_path):
    return SyncService(repository, registry, tmp_path / "content")


# ============================================================
# SyncService
# ============================================================


class TestSyncService:
    @pytest.mark.asyncio
    async def test_initial_sync_clones_and_reconciles(self, service, repository, registry):
        repository.incoming.append({"home.md": "# Home", "blog/post.md": "# Post"})

        result = await service.sync(initial=True)

        assert repository.calls == ["clone"]
        assert result.cloned is True
        assert result.reconcile.created == 2
        assert [p.path for p in registry.list_all()] == ["blog/post.md", "home.md"]

    @pytest.mark.asyncio
    async def test_sync_pulls(self, service, repository, registry):
        repository.path.mkdir()
        repository.incoming.append({"about.md": "# About"})

        result = await service.sync()

        assert repository.calls == ["pull"]
        assert result.cloned is False
        assert registry.get_by_path("about.md").title == "About"

    @pytest.mark.asyncio
    async def test_transport_error_skips_reconcile(self, tmp_path, registry):
        repository = FakeRepository(tmp_path / "content", fail=True)
        (tmp_path / "content").mkdir()
        (tmp_path / "content" / "home.md").write_text("# Home")
        service = SyncService(repository, registry, tmp_path / "content")

        with pytest.raises(TransportError):
            await service.sync()
        assert registry.list_all() == []

    @pytest.mark.asyncio
    async def test_walk_error_propagates(self, tmp_path, registry):
        repository = FakeRepository(tmp_path / "content")
        service = SyncService(repository, registry, tmp_path / "elsewhere")
        with pytest.raises(WalkError):
            await service.sync(initial=True)

    @pytest.mark.asyncio
    async def test_concurrent_syncs_are_serialized(self, service, repository, registry):
        repository.path.mkdir()
        repository.incoming.extend([{"first.md": "1"}, {"second.md": "2"}])

        results = await asyncio.gather(service.sync(), service.sync())

        assert repository.max_active == 1
        assert [r.reconcile.created for r in results] == [1, 1]
        assert {p.path for p in registry.list_all()} == {"first.md", "second.md"}


# ============================================================
# SyncScheduler
# ============================================================


class ControlledService:
    """Service double whose syncs finish only when released."""

    def __init__(self):
        self.started = 0
        self.release = asyncio.Event()
        self.fail = False

    async def sync(self, initial=False):
        self.started += 1
        await self.release.wait()
        if self.fail:
            raise TransportError(["git", "pull"], "boom")
        return SyncResult()


class TestSyncScheduler:
    @pytest.mark.asyncio
    async def test_schedule_returns_before_completion(self):
        service = ControlledService()
        scheduler = SyncScheduler(service)

        future = scheduler.schedule()
        await asyncio.sleep(0)
        assert not future.done()
        assert scheduler.busy

        service.release.set()
        assert isinstance(await future, SyncResult)
        await scheduler.wait_idle()
        assert not scheduler.busy

    @pytest.mark.asyncio
    async def test_requests_before_start_coalesce(self):
        service = ControlledService()
        scheduler = SyncScheduler(service)

        first = scheduler.schedule()
        second = scheduler.schedule()

        assert first is second
        service.release.set()
        await scheduler.wait_idle()
        assert service.started == 1

    @pytest.mark.asyncio
    async def test_request_during_run_queues_one_more(self):
        service = ControlledService()
        scheduler = SyncScheduler(service)

        running = scheduler.schedule()
        await asyncio.sleep(0)
        assert service.started == 1

        queued = [scheduler.schedule() for _ in range(3)]
        assert all(f is queued[0] for f in queued)
        assert queued[0] is not running

        service.release.set()
        await scheduler.wait_idle()

        assert service.started == 2
        assert running.done() and queued[0].done()

    @pytest.mark.asyncio
    async def test_failure_resolves_none_and_logs(self, caplog):
        service = ControlledService()
        service.fail = True
        service.release.set()
        scheduler = SyncScheduler(service)

        result = await scheduler.schedule()

        assert result is None
        assert "Failed to sync content" in caplog.text

    @pytest.mark.asyncio
    async def test_scheduler_recovers_after_failure(self):
        service = ControlledService()
        service.fail = True
        service.release.set()
        scheduler = SyncScheduler(service)
        assert await scheduler.schedule() is None

        service.fail = False
        assert isinstance(await scheduler.schedule(), SyncResult)

    @pytest.mark.asyncio
    async def test_later_pull_wins(self, service, repository, registry):
        """Two overlapping deliveries end with the tree of the later pull."""
        repository.path.mkdir()
        repository.incoming.extend([{"first.md": "1"}, {"second.md": "2"}])
        scheduler = SyncScheduler(service)

        scheduler.schedule()
        await asyncio.sleep(0)
        scheduler.schedule()
        await scheduler.wait_idle()

        assert repository.calls == ["pull", "pull"]
        assert repository.max_active == 1
        assert {p.path for p in registry.list_all()} == {"first.md", "second.md"}
