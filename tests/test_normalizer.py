"""Tests for profile normalization: container resolution, grouping, building, degradation."""

import asyncio

import pytest

from conftest import (
    P_ADMIN,
    P_ORPHAN,
    P_SALES,
    P_SUPPORT,
    PS_ADMIN,
    PS_SALES,
    FakeProvider,
)
from profile_compare.normalizer import ProfileNormalizer, normalize_profiles
from profile_compare.profile_diff import compare
from profile_compare.salesforce_client import SalesforceAPIError
from profile_compare.schemas import DiffType


def _normalize(provider, profile_ids, flag_fields=None):
    return asyncio.run(normalize_profiles(provider, profile_ids, flag_fields))


def _by_id(profiles):
    return {p.profile_id: p for p in profiles}


def test_normalizes_profiles_in_request_order(provider):
    result = _normalize(provider, [P_SALES, P_ADMIN, P_SUPPORT])
    assert [p.profile_id for p in result] == [P_SALES, P_ADMIN, P_SUPPORT]
    assert result[1].profile_name == "System Administrator"


def test_object_and_field_permissions(provider):
    admin = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))[P_ADMIN]

    account = admin.objects["Account"]
    assert account.permissions.read and account.permissions.modify_all
    assert account.fields["Industry"].read is True
    assert account.fields["Industry"].edit is True
    assert admin.objects["Case"].permissions.delete is True
    assert admin.objects["Case"].permissions.view_all is False


def test_field_grant_without_object_grant_synthesizes_defaults(provider):
    sales = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))[P_SALES]

    opportunity = sales.objects["Opportunity"]
    assert opportunity.permissions.model_dump() == {
        "read": False,
        "create": False,
        "edit": False,
        "delete": False,
        "view_all": False,
        "modify_all": False,
    }
    assert opportunity.fields["Amount"].read is True


def test_every_field_object_has_an_entry(provider):
    owner = {ps["Id"]: ps["ProfileId"] for ps in provider.permission_sets}
    profiles = _by_id(_normalize(provider, [P_ADMIN, P_SALES, P_SUPPORT]))
    for row in provider.field_permissions:
        assert row["SobjectType"] in profiles[owner[row["ParentId"]]].objects


def test_system_permissions_are_also_user_permissions(provider):
    profiles = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))
    assert profiles[P_ADMIN].system_permissions == {"ViewSetup": True, "ApiEnabled": True}
    assert profiles[P_SALES].system_permissions == {"ViewSetup": False, "ApiEnabled": True}
    assert profiles[P_SALES].user_permissions == profiles[P_SALES].system_permissions


def test_declared_flag_fields_skip_describe(provider):
    profiles = _normalize(provider, [P_ADMIN, P_SALES], flag_fields=["PermissionsViewSetup"])
    assert all(set(p.system_permissions) == {"ViewSetup"} for p in profiles)
    assert not any(c[0] == "describe_permission_flags" for c in provider.calls)


def test_describe_failure_falls_back_to_basic_fields():
    provider = FakeProvider(fail={"describe_permission_flags"})
    admin = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))[P_ADMIN]
    assert admin.system_permissions == {"ViewSetup": True, "ApiEnabled": True}
    flag_call = next(c for c in provider.calls if c[0] == "get_permission_set_flags")
    assert "PermissionsModifyAllData" in flag_call[2]


def test_entity_access_is_resolved_and_routed(provider):
    profiles = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))
    admin, sales = profiles[P_ADMIN], profiles[P_SALES]

    assert admin.apex_classes == ["AdminUtils", "Utils"]
    assert admin.visualforce_pages == ["AccountOverview"]
    assert admin.record_types == ["Account.Partner"]
    assert admin.tab_visibilities == {"Invoices": "Visible"}
    assert sales.app_visibilities["Sales Console"].visible is True
    assert sales.app_visibilities["Sales Console"].default is False
    assert admin.lightning_pages == []


def test_unresolved_class_grant_contributes_nothing(provider):
    profiles = _normalize(provider, [P_ADMIN, P_SALES])
    sales = _by_id(profiles)[P_SALES]
    assert sales.apex_classes == ["Utils"]

    result = compare(profiles, include_unchanged=True)
    assert not any("01pXX" in d.path for d in result.differences)


def test_lists_are_sorted_and_deduplicated(provider):
    provider.setup_entity_access.append(
        {"ParentId": PS_ADMIN, "SetupEntityId": "01p01", "SetupEntityType": "ApexClass"}
    )
    provider.apex_classes["01p00"] = "Aardvark"
    provider.setup_entity_access.append(
        {"ParentId": PS_ADMIN, "SetupEntityId": "01p00", "SetupEntityType": "ApexClass"}
    )
    for profile in _normalize(provider, [P_ADMIN, P_SALES, P_SUPPORT]):
        for attr in ("apex_classes", "visualforce_pages", "lightning_pages", "record_types"):
            items = getattr(profile, attr)
            assert items == sorted(set(items))
    admin = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))[P_ADMIN]
    assert admin.apex_classes == ["Aardvark", "AdminUtils", "Utils"]


def test_profile_without_permission_set_is_dropped(provider):
    result = _normalize(provider, [P_ADMIN, P_SALES, P_ORPHAN])
    assert [p.profile_id for p in result] == [P_ADMIN, P_SALES]

    comparison = compare(result)
    assert [p.id for p in comparison.profiles] == [P_ADMIN, P_SALES]


def test_unknown_profile_id_is_dropped(provider):
    result = _normalize(provider, [P_ADMIN, "00e00000000009ZZZZ"])
    assert [p.profile_id for p in result] == [P_ADMIN]


def test_duplicate_ids_are_normalized_once(provider):
    result = _normalize(provider, [P_ADMIN, P_ADMIN, P_SALES])
    assert [p.profile_id for p in result] == [P_ADMIN, P_SALES]


def test_grants_of_other_permission_sets_are_ignored(provider):
    provider.object_permissions.append(
        {"ParentId": "0PS999999999999AAA", "SobjectType": "Lead", "PermissionsRead": True}
    )
    provider.get_object_permissions = _returning(provider.object_permissions)
    for profile in _normalize(provider, [P_ADMIN, P_SALES]):
        assert "Lead" not in profile.objects


def _returning(rows):
    async def _fetch(ids):
        return list(rows)

    return _fetch


def test_last_object_row_wins(provider):
    provider.object_permissions.append(
        {"ParentId": PS_SALES, "SobjectType": "Account", "PermissionsRead": True,
         "PermissionsDelete": True}
    )
    sales = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))[P_SALES]
    assert sales.objects["Account"].permissions.delete is True
    assert sales.objects["Account"].permissions.create is False


# ── degradation ──────────────────────────────────────────


def test_field_permission_failure_degrades_to_no_fields():
    provider = FakeProvider(fail={"get_field_permissions"})
    profiles = _normalize(provider, [P_ADMIN, P_SALES])

    assert len(profiles) == 2
    admin = _by_id(profiles)[P_ADMIN]
    assert admin.objects["Account"].permissions.read is True
    assert admin.objects["Account"].fields == {}
    assert "Opportunity" not in _by_id(profiles)[P_SALES].objects


def test_every_group_one_fetch_degrades_independently():
    provider = FakeProvider(
        fail={
            "get_object_permissions",
            "get_permission_set_flags",
            "get_setup_entity_access",
        }
    )
    profiles = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))
    admin = profiles[P_ADMIN]
    assert admin.system_permissions == {}
    assert admin.apex_classes == []
    # Field rows still synthesize their objects
    assert admin.objects["Account"].permissions.read is False
    assert admin.objects["Account"].fields["Industry"].read is True


def test_failed_name_catalog_drops_only_that_category():
    provider = FakeProvider(fail={"get_apex_classes", "get_custom_applications"})
    profiles = _by_id(_normalize(provider, [P_ADMIN, P_SALES]))
    assert profiles[P_ADMIN].apex_classes == []
    assert profiles[P_SALES].app_visibilities == {}
    assert profiles[P_ADMIN].visualforce_pages == ["AccountOverview"]
    assert profiles[P_ADMIN].record_types == ["Account.Partner"]


def test_identity_failure_propagates():
    provider = FakeProvider(fail={"get_all_profiles"}, fail_code="SESSION_EXPIRED")
    with pytest.raises(SalesforceAPIError) as exc_info:
        _normalize(provider, [P_ADMIN, P_SALES])
    assert exc_info.value.error_code == "SESSION_EXPIRED"


def test_container_resolution_failure_propagates():
    provider = FakeProvider(fail={"get_owned_permission_sets"})
    with pytest.raises(SalesforceAPIError):
        _normalize(provider, [P_ADMIN, P_SALES])
    assert not any(c[0] == "get_object_permissions" for c in provider.calls)


def test_normalizer_class_uses_declared_flag_fields(provider):
    normalizer = ProfileNormalizer(provider, flag_fields=["PermissionsApiEnabled"])
    profiles = asyncio.run(normalizer.normalize_profiles([P_ADMIN, P_SUPPORT]))
    assert [p.system_permissions for p in profiles] == [
        {"ApiEnabled": True},
        {"ApiEnabled": False},
    ]


# ── end to end ───────────────────────────────────────────


def test_normalized_profiles_diff_end_to_end(provider):
    profiles = _normalize(provider, [P_ADMIN, P_SALES, P_SUPPORT])
    paths = {d.path: d for d in compare(profiles).differences}

    assert paths["objects.Account.permissions.delete"].diff_type == DiffType.added
    assert paths["systemPermissions.ApiEnabled"].diff_type == DiffType.removed
    assert paths["apexClasses.Utils"].diff_type == DiffType.removed
    assert "objects.Account.permissions.read" not in paths


def test_fifteen_char_ids_resolve_against_eighteen_char_rows(provider):
    short_admin, short_sales = P_ADMIN[:15], P_SALES[:15]
    result = _normalize(provider, [short_admin, short_sales])

    assert [p.profile_id for p in result] == [short_admin, short_sales]
    assert result[0].profile_name == "System Administrator"
    assert result[0].objects["Account"].permissions.modify_all is True
    assert result[1].apex_classes == ["Utils"]


def test_mixed_id_lengths_of_one_profile_are_normalized_once(provider):
    result = _normalize(provider, [P_ADMIN, P_ADMIN[:15], P_SALES])
    assert [p.profile_id for p in result] == [P_ADMIN, P_SALES]
