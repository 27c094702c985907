"""release-conductor: cron-driven release orchestration engine."""

__version__ = "0.1.0"
