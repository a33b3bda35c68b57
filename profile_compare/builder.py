"""Turn a :class:`ProfileBundle` into the canonical :class:`NormalizedProfile`."""

from __future__ import annotations

from .aggregator import ProfileBundle
from .schemas import (
    AppVisibility,
    FieldPermission,
    NormalizedProfile,
    ObjectAccess,
    ObjectPermission,
)

TAB_VISIBLE = "Visible"


def object_permission_from_row(row: dict) -> ObjectPermission:
    return ObjectPermission(
        read=bool(row.get("PermissionsRead")),
        create=bool(row.get("PermissionsCreate")),
        edit=bool(row.get("PermissionsEdit")),
        delete=bool(row.get("PermissionsDelete")),
        view_all=bool(row.get("PermissionsViewAllRecords")),
        modify_all=bool(row.get("PermissionsModifyAllRecords")),
    )


def split_field(row: dict) -> tuple[str, str]:
    """``{"SobjectType": "Account", "Field": "Account.Name"}`` → ``("Account", "Name")``."""
    composite = row.get("Field", "")
    prefix, _, rest = composite.partition(".")
    object_name = row.get("SobjectType") or prefix
    return object_name, rest or composite


def _sorted_unique(items: list[str]) -> list[str]:
    return sorted(set(items))


def build_normalized_profile(
    profile_id: str, profile_name: str, bundle: ProfileBundle
) -> NormalizedProfile:
    objects: dict[str, ObjectAccess] = {}

    # Duplicates per permission set/object should not occur; last one wins
    for row in bundle.object_permissions:
        object_name = row.get("SobjectType")
        if not object_name:
            continue
        access = objects.setdefault(object_name, ObjectAccess())
        access.permissions = object_permission_from_row(row)

    # Field rows exist only for granted access; absence means no access
    for row in bundle.field_permissions:
        object_name, field_name = split_field(row)
        if not object_name or not field_name:
            continue
        access = objects.setdefault(object_name, ObjectAccess())
        access.fields[field_name] = FieldPermission(
            read=bool(row.get("PermissionsRead")),
            edit=bool(row.get("PermissionsEdit")),
        )

    tabs = _sorted_unique(bundle.tabs)
    apps = _sorted_unique(bundle.apps)

    return NormalizedProfile(
        profile_id=profile_id,
        profile_name=profile_name,
        objects=objects,
        system_permissions=dict(bundle.system_permissions),
        apex_classes=_sorted_unique(bundle.apex_classes),
        visualforce_pages=_sorted_unique(bundle.visualforce_pages),
        lightning_pages=_sorted_unique(bundle.lightning_pages),
        record_types=_sorted_unique(bundle.record_types),
        tab_visibilities={tab: TAB_VISIBLE for tab in tabs},
        # No source signal for the default app yet
        app_visibilities={app: AppVisibility(visible=True, default=False) for app in apps},
        user_permissions=dict(bundle.system_permissions),
    )
