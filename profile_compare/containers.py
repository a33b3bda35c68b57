"""Profile ↔ owned permission set resolution.

Every grant record in Salesforce hangs off a PermissionSet, not a Profile.
Each profile owns exactly one PermissionSet (``IsOwnedByProfile = true``);
this module builds that mapping in both directions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def id15(sf_id: str) -> str:
    """Case-sensitive 15-character form of a Salesforce ID (18-char IDs add a checksum)."""
    return sf_id[:15]


@dataclass
class PermissionContainerMap:
    profile_to_container: dict[str, str] = field(default_factory=dict)
    container_to_profile: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: list[dict]) -> PermissionContainerMap:
        """Build from ``{Id, ProfileId}`` rows; rows without a profile are ignored."""
        mapping = cls()
        for row in rows:
            profile_id = row.get("ProfileId")
            container_id = row.get("Id")
            if not profile_id or not container_id:
                continue
            mapping.profile_to_container[profile_id] = container_id
        mapping.container_to_profile = {
            c: p for p, c in mapping.profile_to_container.items()
        }
        return mapping

    @property
    def container_ids(self) -> list[str]:
        return list(self.profile_to_container.values())

    def profile_for(self, container_id: str | None) -> str | None:
        if not container_id:
            return None
        return self.container_to_profile.get(container_id)

    def __contains__(self, profile_id: str) -> bool:
        return profile_id in self.profile_to_container


async def resolve_permission_containers(
    provider, profile_ids: list[str]
) -> PermissionContainerMap:
    """Look up the owned PermissionSet for each of *profile_ids*.

    Source errors propagate: without this mapping there is nothing to compare.
    Profiles that own no PermissionSet are simply absent from the result.
    """
    rows = await provider.get_owned_permission_sets(profile_ids)
    # The source answers with 18-char IDs; key the map by the IDs as requested
    requested = {id15(p): p for p in profile_ids}
    mapping = PermissionContainerMap.from_rows(
        [
            {**r, "ProfileId": requested[id15(r["ProfileId"])]}
            for r in rows
            if r.get("ProfileId") and id15(r["ProfileId"]) in requested
        ]
    )

    for profile_id, container_id in mapping.profile_to_container.items():
        logger.debug("Profile %s -> PermissionSet %s", profile_id, container_id)

    missing = [p for p in profile_ids if p not in mapping]
    if missing:
        logger.warning("No PermissionSet found for profiles: %s", ", ".join(missing))
    return mapping
