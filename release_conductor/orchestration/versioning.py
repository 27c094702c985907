# release_conductor/orchestration/versioning.py
"""
Semantic-version arithmetic for release targets.

Pre-release and build metadata are stripped when parsing, since only
MAJOR.MINOR.PATCH is ever shipped. A leading "v" is preserved on output when
the input carried one.
"""

import re
from dataclasses import dataclass

from release_conductor.models.enums import ReleaseType

_VERSION_RE = re.compile(
    r"^(?P<prefix>v?)(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


@dataclass(frozen=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def bump(self, release_type: ReleaseType) -> "SemVer":
        if release_type == ReleaseType.MAJOR:
            return SemVer(self.major + 1, 0, 0)
        if release_type == ReleaseType.MINOR:
            return SemVer(self.major, self.minor + 1, 0)
        if release_type == ReleaseType.HOTFIX:
            return SemVer(self.major, self.minor, self.patch + 1)
        raise ValueError(f"Unknown release type: {release_type!r}")


def _match(version: str) -> re.Match:
    m = _VERSION_RE.match(version.strip())
    if m is None:
        raise ValueError(f"Invalid semantic version: '{version}'")
    return m


def parse_version(version: str) -> SemVer:
    """
    Parse "1.2.3", "v1.2.3" or "1.2.3-rc.1+build.7" into a SemVer.

    Raises:
        ValueError: If the string is not a semantic version
    """
    m = _match(version)
    return SemVer(int(m.group("major")), int(m.group("minor")), int(m.group("patch")))


def is_valid_version(version: str) -> bool:
    return _VERSION_RE.match(version.strip()) is not None


def _format(version: SemVer, like: str) -> str:
    return f"{_match(like).group('prefix')}{version}"


def bump_version(version: str, release_type: ReleaseType) -> str:
    """Bump MAJOR/MINOR/HOTFIX, dropping any pre-release or build suffix."""
    return _format(parse_version(version).bump(release_type), version)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 comparing two versions by MAJOR.MINOR.PATCH."""
    left, right = parse_version(a), parse_version(b)
    return (left > right) - (left < right)


def resolve_version_for_first_scheduled_release(
    initial_version: str,
    latest_version: str | None,
    release_type: ReleaseType,
) -> str:
    """
    Pick the version for the next scheduled release of a platform target.

    With no prior release the configured initial version is used unchanged.
    Otherwise the higher of the initial version and the bumped latest version
    wins, so versions only move forward even if the configuration lags.
    """
    if latest_version is None:
        return initial_version

    bumped = bump_version(latest_version, release_type)
    if compare_versions(initial_version, bumped) >= 0:
        return initial_version
    return bumped


def highest_version(versions: list[str]) -> str | None:
    """Return the highest version in `versions` (None if empty)."""
    if not versions:
        return None
    return max(versions, key=parse_version)


def release_branch_name(version: str) -> str:
    return f"release/{version}"


def cycle_tag(sequence: int) -> str:
    """Display tag for the Nth regression cycle: "RC1", "RC2", ..."""
    return f"RC{sequence}"


def rc_tag_name(version: str, sequence: int) -> str:
    """Git tag for a regression cycle build, e.g. "v1.3.0_rc_2"."""
    return f"v{parse_version(version)}_rc_{sequence}"


def release_tag_name(version: str) -> str:
    return f"v{parse_version(version)}"
