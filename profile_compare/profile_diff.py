"""N-way profile diff engine: compares normalized profiles category by category."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from .schemas import (
    SUMMARY_KEYS,
    ComparisonResult,
    DiffCategory,
    DiffItem,
    DiffType,
    NormalizedProfile,
    ProfileRef,
)

TAB_HIDDEN = "Hidden"

# (attribute, wire name)
_OBJECT_PERMISSIONS = [
    ("read", "read"),
    ("create", "create"),
    ("edit", "edit"),
    ("delete", "delete"),
    ("view_all", "viewAll"),
    ("modify_all", "modifyAll"),
]
_FIELD_PERMISSIONS = ["read", "edit"]

# (NormalizedProfile attribute, path prefix, category)
_LIST_PROPERTIES = [
    ("apex_classes", "apexClasses", DiffCategory.apex_class),
    ("visualforce_pages", "visualforcePages", DiffCategory.visualforce_page),
    ("lightning_pages", "lightningPages", DiffCategory.lightning_page),
    ("record_types", "recordTypes", DiffCategory.record_type),
]


def diff_type_for_bools(values: Iterable[bool]) -> DiffType:
    """Classify one boolean key across profiles.

    Exactly one holder is ``added``, exactly one non-holder is ``removed``,
    any other split is ``changed``.
    """
    values = list(values)
    if len(set(values)) <= 1:
        return DiffType.unchanged
    true_count = sum(1 for v in values if v)
    false_count = len(values) - true_count
    if true_count == 1 and false_count > 0:
        return DiffType.added
    if false_count == 1 and true_count > 0:
        return DiffType.removed
    return DiffType.changed


def diff_type_for_strings(values: Iterable[str]) -> DiffType:
    return DiffType.unchanged if len(set(values)) <= 1 else DiffType.changed


class _Collector:
    """Accumulates diff items and per-category counts for one comparison."""

    def __init__(self, include_unchanged: bool):
        self.include_unchanged = include_unchanged
        self.differences: list[DiffItem] = []
        self.summary: dict[str, int] = {key: 0 for key in SUMMARY_KEYS.values()}

    def emit(
        self,
        *,
        path: str,
        category: DiffCategory,
        values: dict[str, Any],
        diff_type: DiffType,
        object_name: str | None = None,
        field_name: str | None = None,
        permission_name: str | None = None,
    ) -> None:
        if diff_type == DiffType.unchanged and not self.include_unchanged:
            return
        if diff_type != DiffType.unchanged:
            self.summary[SUMMARY_KEYS[category]] += 1
        self.differences.append(
            DiffItem(
                path=path,
                category=category,
                object_name=object_name,
                field_name=field_name,
                permission_name=permission_name,
                values=values,
                diff_type=diff_type,
            )
        )


def _union(profiles: list[NormalizedProfile], keys_fn: Callable[[NormalizedProfile], Iterable[str]]) -> list[str]:
    keys: set[str] = set()
    for p in profiles:
        keys.update(keys_fn(p))
    return sorted(keys)


def _values(profiles: list[NormalizedProfile], value_fn: Callable[[NormalizedProfile], Any]) -> dict[str, Any]:
    return {p.profile_id: value_fn(p) for p in profiles}


# ── passes ───────────────────────────────────────────────


def _compare_object_permissions(profiles, out: _Collector) -> None:
    for object_name in _union(profiles, lambda p: p.objects.keys()):
        for attr, perm in _OBJECT_PERMISSIONS:

            def _value(p, attr=attr):
                access = p.objects.get(object_name)
                return bool(getattr(access.permissions, attr)) if access else False

            values = _values(profiles, _value)
            out.emit(
                path=f"objects.{object_name}.permissions.{perm}",
                category=DiffCategory.object_permission,
                object_name=object_name,
                permission_name=perm,
                values=values,
                diff_type=diff_type_for_bools(values.values()),
            )


def _compare_field_permissions(profiles, out: _Collector) -> None:
    for object_name in _union(profiles, lambda p: p.objects.keys()):
        field_names = _union(
            profiles,
            lambda p: p.objects[object_name].fields.keys() if object_name in p.objects else (),
        )
        for field_name in field_names:
            for perm in _FIELD_PERMISSIONS:

                def _value(p, perm=perm):
                    access = p.objects.get(object_name)
                    fp = access.fields.get(field_name) if access else None
                    return bool(getattr(fp, perm)) if fp else False

                values = _values(profiles, _value)
                out.emit(
                    path=f"objects.{object_name}.fields.{field_name}.{perm}",
                    category=DiffCategory.field_permission,
                    object_name=object_name,
                    field_name=field_name,
                    permission_name=perm,
                    values=values,
                    diff_type=diff_type_for_bools(values.values()),
                )


def _compare_system_permissions(profiles, out: _Collector) -> None:
    for name in _union(profiles, lambda p: p.system_permissions.keys()):
        values = _values(profiles, lambda p: bool(p.system_permissions.get(name, False)))
        out.emit(
            path=f"systemPermissions.{name}",
            category=DiffCategory.system_permission,
            permission_name=name,
            values=values,
            diff_type=diff_type_for_bools(values.values()),
        )


def _compare_list_property(profiles, attr: str, prefix: str, category: DiffCategory, out: _Collector) -> None:
    members = {p.profile_id: set(getattr(p, attr)) for p in profiles}
    for item in _union(profiles, lambda p: getattr(p, attr)):
        values = _values(profiles, lambda p: item in members[p.profile_id])
        out.emit(
            path=f"{prefix}.{item}",
            category=category,
            permission_name=item,
            values=values,
            diff_type=diff_type_for_bools(values.values()),
        )


def _compare_tab_visibilities(profiles, out: _Collector) -> None:
    for tab in _union(profiles, lambda p: p.tab_visibilities.keys()):
        values = _values(profiles, lambda p: p.tab_visibilities.get(tab, TAB_HIDDEN))
        out.emit(
            path=f"tabVisibilities.{tab}",
            category=DiffCategory.tab_visibility,
            permission_name=tab,
            values=values,
            diff_type=diff_type_for_strings(values.values()),
        )


def _compare_app_visibilities(profiles, out: _Collector) -> None:
    for app in _union(profiles, lambda p: p.app_visibilities.keys()):
        for attr, label in (("visible", "Visible"), ("default", "Default")):

            def _value(p, attr=attr):
                vis = p.app_visibilities.get(app)
                return bool(getattr(vis, attr)) if vis else False

            values = _values(profiles, _value)
            out.emit(
                path=f"appVisibilities.{app}.{attr}",
                category=DiffCategory.app_visibility,
                permission_name=f"{app} ({label})",
                values=values,
                diff_type=diff_type_for_bools(values.values()),
            )


def compare(
    profiles: list[NormalizedProfile], include_unchanged: bool = False
) -> ComparisonResult:
    """Compare normalized profiles and return every difference with a summary.

    With *include_unchanged* every observed key is reported, including those
    identical across all profiles.
    """
    out = _Collector(include_unchanged)

    _compare_object_permissions(profiles, out)
    _compare_field_permissions(profiles, out)
    _compare_system_permissions(profiles, out)
    for attr, prefix, category in _LIST_PROPERTIES:
        _compare_list_property(profiles, attr, prefix, category, out)
    _compare_tab_visibilities(profiles, out)
    _compare_app_visibilities(profiles, out)

    return ComparisonResult(
        profiles=[ProfileRef(id=p.profile_id, name=p.profile_name) for p in profiles],
        timestamp=datetime.now(timezone.utc),
        total_differences=sum(
            1 for d in out.differences if d.diff_type != DiffType.unchanged
        ),
        differences=out.differences,
        summary=out.summary,
    )
