"""Group fetched grant rows by the profile that owns them."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from .containers import PermissionContainerMap
from .entity_names import EntityNames

logger = logging.getLogger(__name__)

_FLAG_PREFIX = "Permissions"


@dataclass
class ProfileBundle:
    """Everything known about one profile before it is normalized."""

    object_permissions: list[dict] = field(default_factory=list)
    field_permissions: list[dict] = field(default_factory=list)
    system_permissions: dict[str, bool] = field(default_factory=dict)
    apex_classes: list[str] = field(default_factory=list)
    visualforce_pages: list[str] = field(default_factory=list)
    lightning_pages: list[str] = field(default_factory=list)
    record_types: list[str] = field(default_factory=list)
    tabs: list[str] = field(default_factory=list)
    apps: list[str] = field(default_factory=list)


def flag_name(field_name: str) -> str:
    """``PermissionsViewSetup`` → ``ViewSetup``."""
    if field_name.startswith(_FLAG_PREFIX) and len(field_name) > len(_FLAG_PREFIX):
        return field_name[len(_FLAG_PREFIX):]
    return field_name


def extract_flags(row: dict, flag_fields: list[str]) -> dict[str, bool]:
    """Read the declared boolean flag fields off one PermissionSet row."""
    flags: dict[str, bool] = {}
    for name in flag_fields:
        value = row.get(name)
        if isinstance(value, bool):
            flags[flag_name(name)] = value
    return flags


# SetupEntityType → (EntityNames attribute, ProfileBundle attribute)
_ENTITY_ROUTES: dict[str, tuple[str, str]] = {
    "ApexClass": ("apex_classes", "apex_classes"),
    "ApexPage": ("apex_pages", "visualforce_pages"),
    "RecordType": ("record_types", "record_types"),
    "TabSet": ("custom_apps", "apps"),
    "CustomTab": ("custom_tabs", "tabs"),
}


def group_by_profile(
    profile_ids: list[str],
    containers: PermissionContainerMap,
    object_permissions: list[dict],
    field_permissions: list[dict],
    container_flags: dict[str, dict[str, bool]],
    setup_entity_access: list[dict],
    names: EntityNames,
) -> dict[str, ProfileBundle]:
    """Route every row to the bundle of the profile owning its permission set.

    *container_flags* maps permission set ID → flag map.  Only profiles that own
    a permission set get a bundle.
    """
    bundles: dict[str, ProfileBundle] = {
        pid: ProfileBundle() for pid in profile_ids if pid in containers
    }

    def _bundle_for(container_id: str | None) -> ProfileBundle | None:
        profile_id = containers.profile_for(container_id)
        return bundles.get(profile_id) if profile_id else None

    for row in object_permissions:
        bundle = _bundle_for(row.get("ParentId"))
        if bundle is not None:
            bundle.object_permissions.append(row)

    for row in field_permissions:
        bundle = _bundle_for(row.get("ParentId"))
        if bundle is not None:
            bundle.field_permissions.append(row)

    for container_id, flags in container_flags.items():
        bundle = _bundle_for(container_id)
        if bundle is not None:
            bundle.system_permissions = dict(flags)

    type_counts: Counter = Counter()
    matched: Counter = Counter()
    unmatched: Counter = Counter()

    for row in setup_entity_access:
        entity_type = row.get("SetupEntityType", "")
        type_counts[entity_type] += 1

        bundle = _bundle_for(row.get("ParentId"))
        route = _ENTITY_ROUTES.get(entity_type)
        if bundle is None or route is None:
            continue

        lookup_attr, bundle_attr = route
        name = getattr(names, lookup_attr).get(row.get("SetupEntityId"))
        if name:
            getattr(bundle, bundle_attr).append(name)
            matched[entity_type] += 1
        else:
            unmatched[entity_type] += 1

    logger.debug("SetupEntityAccess types found: %s", dict(type_counts))
    logger.debug(
        "Match results: matched=%s unmatched=%s", dict(matched), dict(unmatched)
    )
    return bundles
