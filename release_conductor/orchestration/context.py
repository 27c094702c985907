# release_conductor/orchestration/context.py
"""
Explicit collaborator wiring for the engine.

Every component receives one OrchestrationContext at construction; nothing
looks collaborators up globally or per call.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from release_conductor.integrations.base import (
    CiCdService,
    MessagingService,
    ReleaseConfigRepository,
    ScmService,
    TestManagementService,
    TicketingService,
)
from release_conductor.integrations.unconfigured import (
    UnconfiguredCiCd,
    UnconfiguredMessaging,
    UnconfiguredScm,
    UnconfiguredTestManagement,
    UnconfiguredTicketing,
)
from release_conductor.models.records import utc_now
from release_conductor.models.store import ReleaseStore
from release_conductor.orchestration.activity import ActivityRecorder


@dataclass
class OrchestrationContext:
    """All collaborator handles the engine needs, resolved once."""

    store: ReleaseStore
    release_configs: ReleaseConfigRepository
    scm: ScmService = field(default_factory=UnconfiguredScm)
    cicd: CiCdService = field(default_factory=UnconfiguredCiCd)
    test_management: TestManagementService = field(default_factory=UnconfiguredTestManagement)
    ticketing: TicketingService = field(default_factory=UnconfiguredTicketing)
    messaging: MessagingService = field(default_factory=UnconfiguredMessaging)
    clock: Callable[[], datetime] = utc_now
    activity: ActivityRecorder | None = None

    def __post_init__(self) -> None:
        if self.activity is None:
            self.activity = ActivityRecorder(self.store, clock=self.clock)
