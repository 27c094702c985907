# tests/unit/test_task_plan.py
"""
Unit tests for stage task plans.

Tests cover task selection per configuration, dependency wiring and the
optional flag derived from each integration's gates_completion setting.
"""

from datetime import datetime, timezone

import pytest
from conftest import make_config, make_release

from release_conductor.models.enums import (
    Platform,
    RegressionCycleStatus,
    Stage,
    TaskStatus,
    TaskType,
)
from release_conductor.models.records import RegressionCycle, Task
from release_conductor.orchestration.task_plan import build_stage_tasks, is_manual_upload


def _cycle(sequence=1, automation_runs=False):
    return RegressionCycle(
        cycle_id=f"cycle{sequence:07d}",
        release_id="rel00000001",
        sequence=sequence,
        tag=f"RC{sequence}",
        scheduled_at=datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc),
        status=RegressionCycleStatus.NOT_STARTED,
        automation_runs=automation_runs,
    )


def _by_type(tasks):
    result = {}
    for task in tasks:
        result.setdefault(task.task_type, []).append(task)
    return result


ALL_INTEGRATIONS = {
    "test_management": {"enabled": True},
    "ticketing": {"enabled": True},
    "chat": {"enabled": True},
}


class TestKickoff:
    def test_minimal_plan(self):
        tasks = build_stage_tasks(make_release(), Stage.KICKOFF, make_config())

        assert [t.task_type for t in tasks] == [
            TaskType.FORK_BRANCH,
            TaskType.TRIGGER_PRE_REGRESSION_BUILDS,
            TaskType.TRIGGER_PRE_REGRESSION_BUILDS,
        ]
        assert [t.sequence for t in tasks] == [1, 2, 3]
        assert all(t.status == TaskStatus.PENDING for t in tasks)
        assert {t.platform for t in tasks[1:]} == {Platform.ANDROID, Platform.IOS}

    def test_builds_depend_on_fork(self):
        tasks = build_stage_tasks(make_release(), Stage.KICKOFF, make_config())
        fork = tasks[0]

        assert fork.depends_on == []
        assert all(t.depends_on == [fork.task_id] for t in tasks[1:])

    def test_all_integrations(self):
        config = make_config(integrations=ALL_INTEGRATIONS)
        by_type = _by_type(build_stage_tasks(make_release(), Stage.KICKOFF, config))

        assert TaskType.CREATE_PROJECT_MANAGEMENT_TICKET in by_type
        assert TaskType.CREATE_TEST_SUITE in by_type
        message = by_type[TaskType.SEND_KICKOFF_MESSAGE][0]
        # Chat does not gate completion by default
        assert message.optional is True
        assert by_type[TaskType.CREATE_TEST_SUITE][0].optional is False

    def test_manual_upload_plans_upload_tasks(self):
        config = make_config(build_upload_mode="MANUAL")
        tasks = build_stage_tasks(make_release(), Stage.KICKOFF, config)
        builds = tasks[1:]

        assert [t.task_type for t in builds] == [TaskType.TRIGGER_PRE_REGRESSION_BUILDS] * 2
        assert all(is_manual_upload(t) for t in builds)
        assert not is_manual_upload(tasks[0])

    def test_chat_can_be_made_gating(self):
        config = make_config(integrations={"chat": {"enabled": True, "gates_completion": True}})
        by_type = _by_type(build_stage_tasks(make_release(), Stage.KICKOFF, config))

        assert by_type[TaskType.SEND_KICKOFF_MESSAGE][0].optional is False

    def test_non_gating_integration_is_optional(self):
        config = make_config(
            integrations={"ticketing": {"enabled": True, "gates_completion": False}}
        )
        by_type = _by_type(build_stage_tasks(make_release(), Stage.KICKOFF, config))

        assert by_type[TaskType.CREATE_PROJECT_MANAGEMENT_TICKET][0].optional is True


class TestRegression:
    def test_requires_cycle(self):
        with pytest.raises(ValueError):
            build_stage_tasks(make_release(), Stage.REGRESSION, make_config())

    def test_cycle_plan(self):
        cycle = _cycle(sequence=2)
        config = make_config(integrations=ALL_INTEGRATIONS)
        tasks = build_stage_tasks(make_release(), Stage.REGRESSION, config, cycle=cycle)
        by_type = _by_type(tasks)

        assert all(t.cycle_id == cycle.cycle_id for t in tasks)
        tag = by_type[TaskType.CREATE_RC_TAG][0]
        assert tag.params == {"cycle_sequence": 2}
        assert len(by_type[TaskType.TRIGGER_REGRESSION_BUILDS]) == 2
        assert TaskType.TRIGGER_AUTOMATION_RUNS not in by_type

        test_run = by_type[TaskType.CREATE_TEST_RUN][0]
        build_ids = {t.task_id for t in by_type[TaskType.TRIGGER_REGRESSION_BUILDS]}
        assert set(test_run.depends_on) == build_ids | {tag.task_id}
        assert test_run.params == {"cycle_tag": "RC2"}

    def test_automation_runs_are_optional(self):
        cycle = _cycle(automation_runs=True)
        tasks = build_stage_tasks(make_release(), Stage.REGRESSION, make_config(), cycle=cycle)
        runs = _by_type(tasks)[TaskType.TRIGGER_AUTOMATION_RUNS]

        assert len(runs) == 2
        assert all(t.optional for t in runs)

    def test_manual_upload_cycle_waits_for_uploads(self):
        config = make_config(build_upload_mode="MANUAL")
        cycle = _cycle(automation_runs=True)
        by_type = _by_type(
            build_stage_tasks(make_release(), Stage.REGRESSION, config, cycle=cycle)
        )

        builds = by_type[TaskType.TRIGGER_REGRESSION_BUILDS]
        assert len(builds) == 2
        assert all(is_manual_upload(t) for t in builds)
        assert TaskType.TRIGGER_AUTOMATION_RUNS not in by_type


class TestPreRelease:
    def test_platform_builds(self):
        tasks = build_stage_tasks(make_release(), Stage.PRE_RELEASE, make_config())
        by_type = _by_type(tasks)

        tag = by_type[TaskType.CREATE_RELEASE_TAG][0]
        assert by_type[TaskType.TRIGGER_TEST_FLIGHT_BUILD][0].platform == Platform.IOS
        assert by_type[TaskType.CREATE_AAB_BUILD][0].platform == Platform.ANDROID
        assert by_type[TaskType.CREATE_AAB_BUILD][0].depends_on == [tag.task_id]

    def test_android_only_has_no_test_flight(self):
        config = make_config(
            platform_targets=[
                {"platform": "ANDROID", "target": "PLAY_STORE", "initial_version": "1.0.0"}
            ]
        )
        by_type = _by_type(build_stage_tasks(make_release(), Stage.PRE_RELEASE, config))

        assert TaskType.TRIGGER_TEST_FLIGHT_BUILD not in by_type
        assert TaskType.CREATE_AAB_BUILD in by_type

    def test_manual_upload_platform_builds(self):
        config = make_config(build_upload_mode="MANUAL")
        by_type = _by_type(build_stage_tasks(make_release(), Stage.PRE_RELEASE, config))

        assert is_manual_upload(by_type[TaskType.TRIGGER_TEST_FLIGHT_BUILD][0])
        assert is_manual_upload(by_type[TaskType.CREATE_AAB_BUILD][0])
        assert not is_manual_upload(by_type[TaskType.CREATE_RELEASE_TAG][0])

    def test_ticket_ids_carried_from_kickoff(self):
        kickoff_ticket = Task(
            task_id="ticket00001",
            release_id="rel00000001",
            stage=Stage.KICKOFF,
            task_type=TaskType.CREATE_PROJECT_MANAGEMENT_TICKET,
            sequence=2,
            status=TaskStatus.COMPLETED,
            external_data={"ticket_ids": ["PROJ-1", "PROJ-2"]},
        )
        config = make_config(integrations=ALL_INTEGRATIONS)
        tasks = build_stage_tasks(
            make_release(), Stage.PRE_RELEASE, config, kickoff_tasks=[kickoff_ticket]
        )
        approval = _by_type(tasks)[TaskType.CHECK_PROJECT_RELEASE_APPROVAL][0]

        assert approval.params == {"ticket_ids": ["PROJ-1", "PROJ-2"]}

    def test_message_waits_for_all_builds(self):
        config = make_config(integrations={"chat": {"enabled": True}})
        tasks = build_stage_tasks(make_release(), Stage.PRE_RELEASE, config)
        by_type = _by_type(tasks)
        message = by_type[TaskType.SEND_PRE_RELEASE_MESSAGE][0]

        expected = {
            by_type[TaskType.CREATE_RELEASE_TAG][0].task_id,
            by_type[TaskType.TRIGGER_TEST_FLIGHT_BUILD][0].task_id,
            by_type[TaskType.CREATE_AAB_BUILD][0].task_id,
        }
        assert set(message.depends_on) == expected
