# tests/unit/test_tools.py
"""
Integration tests for the tool functions behind the MCP server and CLI.

Tests validate camelCase outputs and the mapping of engine errors to ToolError.
"""

import pytest
from conftest import make_config, make_release
from fastmcp.exceptions import ToolError

from release_conductor.integrations.release_configs import StaticReleaseConfigRepository
from release_conductor.orchestration.actions import ReleaseActions
from release_conductor.orchestration.scheduler import ReleaseScheduler
from release_conductor.tools.create_release import create_release
from release_conductor.tools.list_releases import list_releases
from release_conductor.tools.release_action import release_action
from release_conductor.tools.release_history import release_history
from release_conductor.tools.release_status import release_status, release_tasks
from release_conductor.tools.run_tick import run_tick
from release_conductor.tools.upload_build import upload_build


@pytest.fixture
def actions(context) -> ReleaseActions:
    return ReleaseActions(context)


class TestCreateRelease:
    @pytest.mark.asyncio
    async def test_creates_pending_release(self, context, store):
        result = await create_release("mobile-app", context, actor="alice")

        assert result["status"] == "PENDING"
        assert result["version"] == "1.0.0"
        assert result["branch"] == "release/1.0.0"
        assert result["kickoffDate"] == "2026-03-02T10:00:00+00:00"
        assert "nextSteps" in result
        assert await store.get_release(result["releaseId"]) is not None

    @pytest.mark.asyncio
    async def test_release_type_bumps_next_version(self, context):
        await create_release("mobile-app", context)

        result = await create_release("mobile-app", context, release_type="hotfix")

        assert result["version"] == "1.0.1"

    @pytest.mark.asyncio
    async def test_explicit_kickoff_and_versions(self, context):
        result = await create_release(
            "mobile-app",
            context,
            kickoff_date="2026-03-09T08:30:00",
            versions={"android": "2.0.0", "ios": "2.0.0"},
        )

        assert result["kickoffDate"] == "2026-03-09T08:30:00+00:00"
        assert result["version"] == "2.0.0"

    @pytest.mark.asyncio
    async def test_unknown_configuration(self, context):
        with pytest.raises(ToolError, match="'other-app' not found"):
            await create_release("other-app", context)

    @pytest.mark.asyncio
    async def test_invalid_version(self, context):
        with pytest.raises(ToolError, match="Invalid versions"):
            await create_release("mobile-app", context, versions={"IOS": "latest"})


class TestReadTools:
    @pytest.mark.asyncio
    async def test_list_releases(self, store):
        await store.add_release(make_release())
        await store.add_release(make_release("rel00000002", tenant_id="tenant-2"))

        result = await list_releases(store, tenant_id="tenant-1")

        assert result["total"] == 1
        summary = result["releases"][0]
        assert summary["releaseId"] == "rel00000001"
        assert summary["tenantId"] == "tenant-1"
        assert summary["kickoffDate"] == "2026-03-02T10:00:00+00:00"

    @pytest.mark.asyncio
    async def test_status_of_unknown_release(self, actions):
        with pytest.raises(ToolError, match="Use list_releases"):
            await release_status("missing00001", actions)

    @pytest.mark.asyncio
    async def test_status_rejects_bad_id(self, actions):
        with pytest.raises(ToolError, match="Invalid release ID"):
            await release_status("../etc", actions)

    @pytest.mark.asyncio
    async def test_status(self, store, actions):
        await store.add_release(make_release())

        result = await release_status("rel00000001", actions)

        assert result["currentPhase"] == "NOT_STARTED"
        assert result["actions"] == ["START"]

    @pytest.mark.asyncio
    async def test_tasks_after_start(self, store, actions):
        await store.add_release(make_release())
        await release_action("rel00000001", "start", "alice", actions)

        result = await release_tasks("rel00000001", store)

        assert result["releaseId"] == "rel00000001"
        assert result["tasks"][0]["taskType"] == "FORK_BRANCH"
        assert result["tasks"][0]["status"] == "PENDING"
        assert all(t["stage"] == "KICKOFF" for t in result["tasks"])

    @pytest.mark.asyncio
    async def test_history(self, store, actions):
        await store.add_release(make_release())
        await release_action("rel00000001", "start", "alice", actions)

        result = await release_history("rel00000001", store)

        types = [e["activityType"] for e in result["entries"]]
        assert "RELEASE_STATUS" in types
        assert types[-1] == "PHASE"
        assert result["entries"][-1]["newValue"] == "KICKOFF"
        assert {e["actor"] for e in result["entries"]} == {"alice"}

    @pytest.mark.asyncio
    async def test_history_limit(self, store, actions):
        await store.add_release(make_release())
        await release_action("rel00000001", "start", "alice", actions)

        result = await release_history("rel00000001", store, limit=1)

        assert len(result["entries"]) == 1


class TestReleaseAction:
    @pytest.mark.asyncio
    async def test_start(self, store, actions):
        await store.add_release(make_release())

        result = await release_action("rel00000001", "START", "alice", actions)

        assert result["action"] == "START"
        assert result["phase"] == "KICKOFF"
        assert result["message"].startswith("START applied")

    @pytest.mark.asyncio
    async def test_illegal_action(self, store, actions):
        await store.add_release(make_release())

        with pytest.raises(ToolError, match="Cannot PAUSE release 'rel00000001'"):
            await release_action("rel00000001", "pause", "alice", actions)

    @pytest.mark.asyncio
    async def test_unknown_release(self, actions):
        with pytest.raises(ToolError, match="not found"):
            await release_action("missing00001", "pause", "alice", actions)

    @pytest.mark.asyncio
    async def test_unknown_action(self, actions):
        with pytest.raises(ToolError, match="Unknown action"):
            await release_action("rel00000001", "launch", "alice", actions)


@pytest.mark.asyncio
async def test_run_tick_reports_counts(store, context, conductor_config):
    """A tick over one due release processes it and reports camelCase counts."""
    await store.add_release(make_release())

    result = await run_tick(ReleaseScheduler(context, conductor_config))

    assert result["success"] is True
    assert result["processedCount"] == 1
    assert result["skippedLocked"] == 0
    assert result["createdReleases"] == []
    assert result["errors"] == []


class TestUploadBuild:
    @pytest.mark.asyncio
    async def test_completes_waiting_build(self, store, context, conductor_config, actions):
        context.release_configs = StaticReleaseConfigRepository(
            [make_config(build_upload_mode="MANUAL")]
        )
        await store.add_release(make_release())
        scheduler = ReleaseScheduler(context, conductor_config)
        await scheduler.tick()
        await scheduler.tick()
        build = (await store.list_tasks("rel00000001"))[1]

        result = await upload_build(
            "rel00000001", build.task_id, "https://builds.example.com/app-1.3.0.aab", "alice", actions
        )

        assert result["taskId"] == build.task_id
        assert result["status"] == "COMPLETED"
        assert result["externalId"] == "https://builds.example.com/app-1.3.0.aab"

    @pytest.mark.asyncio
    async def test_task_without_upload(self, store, actions):
        await store.add_release(make_release())
        await release_action("rel00000001", "start", "alice", actions)
        fork = (await store.list_tasks("rel00000001"))[0]

        with pytest.raises(ToolError, match=f"Cannot upload a build for task '{fork.task_id}'"):
            await upload_build("rel00000001", fork.task_id, "s3://builds/app.ipa", "alice", actions)

    @pytest.mark.asyncio
    async def test_unknown_release(self, actions):
        with pytest.raises(ToolError, match="not found"):
            await upload_build("missing00001", "taskbuild001", "s3://builds/app.ipa", "alice", actions)

    @pytest.mark.asyncio
    async def test_empty_artifact(self, actions):
        with pytest.raises(ToolError, match="cannot be empty"):
            await upload_build("rel00000001", "taskbuild001", "   ", "alice", actions)
