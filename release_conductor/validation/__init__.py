"""Input validation and sanitization utilities."""

from .sanitize import (
    parse_action,
    parse_kickoff,
    parse_release_type,
    sanitize_actor,
    sanitize_config_id,
    sanitize_release_id,
)

__all__ = [
    "sanitize_release_id",
    "sanitize_config_id",
    "sanitize_actor",
    "parse_action",
    "parse_release_type",
    "parse_kickoff",
]
