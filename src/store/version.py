from __future__ import annotations

from typing import Iterable, Tuple

from common.errors import VersionIncompatibleError


CURRENT_SCHEMA_VERSION = "2.9"
SUPPORTED_SCHEMA_VERSIONS: Tuple[str, ...] = ("2.8", "2.9")


def parse_schema_version(version: str) -> Tuple[int, ...]:
    """Parse "major.minor[.patch]" into a comparable tuple with trailing zeros dropped."""
    parts = str(version).strip().split(".")
    if not 2 <= len(parts) <= 3:
        raise ValueError(f"Unrecognized schema version {version!r}")
    try:
        nums = [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"Unrecognized schema version {version!r}") from None
    if any(n < 0 for n in nums):
        raise ValueError(f"Unrecognized schema version {version!r}")
    while len(nums) > 2 and nums[-1] == 0:
        nums.pop()
    return tuple(nums)


class VersionVerifier:
    """Rejects store schema versions outside the supported set. Never migrates."""

    def __init__(self, supported: Iterable[str] = SUPPORTED_SCHEMA_VERSIONS) -> None:
        self._supported = frozenset(parse_schema_version(v) for v in supported)
        if not self._supported:
            raise ValueError("at least one supported version is required")

    def verify_database_version(self, version: str) -> None:
        try:
            parsed = parse_schema_version(version)
        except ValueError as ex:
            raise VersionIncompatibleError(str(ex)) from ex
        if parsed not in self._supported:
            supported = ", ".join(".".join(map(str, v)) for v in sorted(self._supported))
            raise VersionIncompatibleError(
                f"Store schema version {version} is not supported (supported: {supported})"
            )
