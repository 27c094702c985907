# release_conductor/integrations/base.py
"""
Collaborator interfaces consumed by the task executor.

Implementations raise TransientExternalError for network/timeout problems,
ExternalRejection when the external system definitively refuses, and
ConfigurationError when the tenant has not wired the integration. Idempotency
of each call is the implementation's responsibility.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from release_conductor.models.enums import Platform, TaskType

if TYPE_CHECKING:
    from release_conductor.models.release_config import ReleaseConfiguration


class RunStatus(Enum):
    """Status of a long-running external job (CI run, test run)."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TicketStatus(Enum):
    OPEN = "open"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of sending a message to one channel."""

    delivered: bool
    detail: str | None = None


class ScmService(ABC):
    @abstractmethod
    async def fork_branch(self, tenant_id: str, repo: str, base_branch: str, branch: str) -> str:
        """Create `branch` from `base_branch`. Returns the branch ref."""

    @abstractmethod
    async def create_release_tag(self, tenant_id: str, repo: str, branch: str, tag: str) -> str:
        """Tag the head of `branch`. Returns the tag ref."""


class CiCdService(ABC):
    @abstractmethod
    async def trigger(self, tenant_id: str, workflow_ref: str, params: dict[str, Any]) -> str:
        """Start a workflow run. Returns the run id."""

    @abstractmethod
    async def get_run_status(self, tenant_id: str, run_id: str) -> RunStatus:
        """Current status of a workflow run."""


class TestManagementService(ABC):
    __test__ = False

    @abstractmethod
    async def create_test_run(
        self, tenant_id: str, config_id: str, release_id: str, name: str
    ) -> str:
        """Create a test run (or suite). Returns its id."""

    @abstractmethod
    async def get_test_run_status(self, tenant_id: str, run_id: str) -> RunStatus:
        """Current status of a test run."""


class TicketingService(ABC):
    @abstractmethod
    async def create_tickets(
        self, tenant_id: str, config_id: str, release_id: str, title: str
    ) -> list[str]:
        """Create release tracking tickets. Returns ticket ids."""

    @abstractmethod
    async def get_ticket_status(self, tenant_id: str, ticket_id: str) -> TicketStatus:
        """Approval status of a ticket."""


class MessagingService(ABC):
    @abstractmethod
    async def send_message(
        self,
        config_id: str,
        task_type: TaskType,
        params: dict[str, Any],
        platform: Platform | None = None,
    ) -> dict[str, DeliveryResult]:
        """Send a templated message. Returns the delivery result per channel."""


class ReleaseConfigRepository(ABC):
    """Read-only lookup of tenant release configurations."""

    @abstractmethod
    async def get(self, config_id: str) -> "ReleaseConfiguration | None":
        """Configuration by id, or None."""

    @abstractmethod
    async def list_all(self) -> "list[ReleaseConfiguration]":
        """Every known configuration."""
