# release_conductor/integrations/unconfigured.py
"""
Placeholders for integrations a deployment has not wired.

Every call raises ConfigurationError, so the task fails immediately with an
actionable message instead of being retried.
"""

from typing import Any

from release_conductor.errors import ConfigurationError
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
from release_conductor.models.enums import Platform, TaskType


def _missing(name: str) -> ConfigurationError:
    return ConfigurationError(f"No {name} integration configured for this deployment")


class UnconfiguredScm(ScmService):
    async def fork_branch(self, tenant_id: str, repo: str, base_branch: str, branch: str) -> str:
        raise _missing("SCM")

    async def create_release_tag(self, tenant_id: str, repo: str, branch: str, tag: str) -> str:
        raise _missing("SCM")


class UnconfiguredCiCd(CiCdService):
    async def trigger(self, tenant_id: str, workflow_ref: str, params: dict[str, Any]) -> str:
        raise _missing("CI/CD")

    async def get_run_status(self, tenant_id: str, run_id: str) -> RunStatus:
        raise _missing("CI/CD")


class UnconfiguredTestManagement(TestManagementService):
    async def create_test_run(
        self, tenant_id: str, config_id: str, release_id: str, name: str
    ) -> str:
        raise _missing("test management")

    async def get_test_run_status(self, tenant_id: str, run_id: str) -> RunStatus:
        raise _missing("test management")


class UnconfiguredTicketing(TicketingService):
    async def create_tickets(
        self, tenant_id: str, config_id: str, release_id: str, title: str
    ) -> list[str]:
        raise _missing("ticketing")

    async def get_ticket_status(self, tenant_id: str, ticket_id: str) -> TicketStatus:
        raise _missing("ticketing")


class UnconfiguredMessaging(MessagingService):
    async def send_message(
        self,
        config_id: str,
        task_type: TaskType,
        params: dict[str, Any],
        platform: Platform | None = None,
    ) -> dict[str, DeliveryResult]:
        raise _missing("messaging")
