# tests/unit/conftest.py
"""
Shared fixtures: fake collaborators, a controllable clock, sample release
configurations and an in-memory orchestration context.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from release_conductor.config.schema import ConductorConfig, RetryConfig, SchedulerConfig
from release_conductor.integrations.base import (
    CiCdService,
    DeliveryResult,
    MessagingService,
    RunStatus,
    ScmService,
    TestManagementService,
    TicketingService,
    TicketStatus,
)
from release_conductor.integrations.release_configs import StaticReleaseConfigRepository
from release_conductor.models.enums import (
    CronStatus,
    Platform,
    ReleaseStatus,
    ReleaseType,
    StageStatus,
    TaskType,
    WorkflowKind,
)
from release_conductor.models.memory_store import InMemoryReleaseStore
from release_conductor.models.records import PlatformTarget, Release
from release_conductor.models.release_config import ReleaseConfiguration
from release_conductor.orchestration.context import OrchestrationContext

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeScm(ScmService):
    def __init__(self) -> None:
        self.forks: list[str] = []
        self.tags: list[str] = []
        self.errors: list[Exception] = []  # raised in order, one per call

    def _maybe_raise(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    async def fork_branch(self, tenant_id: str, repo: str, base_branch: str, branch: str) -> str:
        self._maybe_raise()
        self.forks.append(branch)
        return f"refs/heads/{branch}"

    async def create_release_tag(self, tenant_id: str, repo: str, branch: str, tag: str) -> str:
        self._maybe_raise()
        self.tags.append(tag)
        return f"refs/tags/{tag}"


class GatedScm(FakeScm):
    """Blocks inside fork_branch until `proceed` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.proceed = asyncio.Event()

    async def fork_branch(self, tenant_id: str, repo: str, base_branch: str, branch: str) -> str:
        self.entered.set()
        await self.proceed.wait()
        return await super().fork_branch(tenant_id, repo, base_branch, branch)


class FakeCiCd(CiCdService):
    def __init__(self, run_status: RunStatus = RunStatus.COMPLETED) -> None:
        self.run_status = run_status
        self.triggered: list[tuple[str, dict[str, Any]]] = []
        self.poll_errors: list[Exception] = []

    async def trigger(self, tenant_id: str, workflow_ref: str, params: dict[str, Any]) -> str:
        self.triggered.append((workflow_ref, params))
        return f"run-{len(self.triggered)}"

    async def get_run_status(self, tenant_id: str, run_id: str) -> RunStatus:
        if self.poll_errors:
            raise self.poll_errors.pop(0)
        return self.run_status


class FakeTestManagement(TestManagementService):
    def __init__(self, run_status: RunStatus = RunStatus.COMPLETED) -> None:
        self.run_status = run_status
        self.created: list[str] = []

    async def create_test_run(
        self, tenant_id: str, config_id: str, release_id: str, name: str
    ) -> str:
        self.created.append(name)
        return f"testrun-{len(self.created)}"

    async def get_test_run_status(self, tenant_id: str, run_id: str) -> RunStatus:
        return self.run_status


class FakeTicketing(TicketingService):
    def __init__(self, ticket_status: TicketStatus = TicketStatus.APPROVED) -> None:
        self.ticket_status = ticket_status
        self.created: list[str] = []

    async def create_tickets(
        self, tenant_id: str, config_id: str, release_id: str, title: str
    ) -> list[str]:
        self.created.append(title)
        return ["PROJ-1", "PROJ-2"]

    async def get_ticket_status(self, tenant_id: str, ticket_id: str) -> TicketStatus:
        return self.ticket_status


class FakeMessaging(MessagingService):
    def __init__(self, delivered: bool = True) -> None:
        self.delivered = delivered
        self.sent: list[tuple[TaskType, dict[str, Any]]] = []

    async def send_message(
        self,
        config_id: str,
        task_type: TaskType,
        params: dict[str, Any],
        platform: Platform | None = None,
    ) -> dict[str, DeliveryResult]:
        self.sent.append((task_type, params))
        detail = None if self.delivered else "channel archived"
        return {"slack": DeliveryResult(self.delivered, detail)}


def make_config(**overrides) -> ReleaseConfiguration:
    """Android + iOS configuration with a workflow for every build kind."""
    data: dict[str, Any] = {
        "config_id": "mobile-app",
        "tenant_id": "tenant-1",
        "name": "Mobile App",
        "repo": "acme/mobile",
        "platform_targets": [
            {"platform": "ANDROID", "target": "PLAY_STORE", "initial_version": "1.0.0"},
            {"platform": "IOS", "target": "APP_STORE", "initial_version": "1.0.0"},
        ],
        "workflows": [
            {
                "kind": kind.value,
                "platform": platform,
                "workflow_ref": f"{kind.value.lower()}-{platform.lower()}.yml",
            }
            for kind in WorkflowKind
            for platform in ("ANDROID", "IOS")
        ],
    }
    data.update(overrides)
    return ReleaseConfiguration(**data)


def make_release(release_id: str = "rel00000001", **overrides) -> Release:
    """A release record attached to the sample configuration."""
    fields: dict[str, Any] = {
        "release_id": release_id,
        "tenant_id": "tenant-1",
        "release_config_id": "mobile-app",
        "release_type": ReleaseType.MINOR,
        "platform_targets": [
            PlatformTarget(Platform.ANDROID, "PLAY_STORE", "1.3.0"),
            PlatformTarget(Platform.IOS, "APP_STORE", "1.3.0"),
        ],
        "branch": "release/1.3.0",
        "base_branch": "main",
        "kickoff_date": T0,
        "created_at": T0 - timedelta(days=1),
    }
    fields.update(overrides)
    return Release(**fields)


def in_regression(**overrides) -> Release:
    """A release that finished kickoff and is in stage 2."""
    fields: dict[str, Any] = {
        "status": ReleaseStatus.IN_PROGRESS,
        "stage1_status": StageStatus.COMPLETED,
        "stage2_status": StageStatus.IN_PROGRESS,
        "cron_status": CronStatus.RUNNING,
    }
    fields.update(overrides)
    return make_release(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryReleaseStore:
    return InMemoryReleaseStore()


@pytest.fixture
def release_config() -> ReleaseConfiguration:
    return make_config()


@pytest.fixture
def fakes() -> dict[str, Any]:
    return {
        "scm": FakeScm(),
        "cicd": FakeCiCd(),
        "test_management": FakeTestManagement(),
        "ticketing": FakeTicketing(),
        "messaging": FakeMessaging(),
    }


@pytest.fixture
def context(store, release_config, fakes, clock) -> OrchestrationContext:
    return OrchestrationContext(
        store=store,
        release_configs=StaticReleaseConfigRepository([release_config]),
        clock=clock,
        **fakes,
    )


@pytest.fixture
def conductor_config() -> ConductorConfig:
    """Zero backoff so retries never sleep."""
    return ConductorConfig(
        scheduler=SchedulerConfig(instance_id="test-instance", callback_timeout_seconds=3600),
        retry=RetryConfig(max_attempts=3, backoff_min_seconds=0, backoff_max_seconds=0),
    )
