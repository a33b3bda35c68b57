"""Shared pytest conftest for profile-compare tests.
All test infrastructure is defined here and injected via fixtures.
"""

import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENCRYPTION_KEY"] = "0123456789abcdef0123456789abcdef"
os.environ["SF_CLIENT_ID"] = "test-client-id"
os.environ["SF_CLIENT_SECRET"] = "test-client-secret"
os.environ["FRONTEND_URL"] = "http://frontend.test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from profile_compare.auth import create_session_token, get_record_provider  # noqa: E402
from profile_compare.main import app  # noqa: E402
from profile_compare.oauth import SalesforceSession  # noqa: E402
from profile_compare.salesforce_client import SalesforceAPIError  # noqa: E402

# 18-char IDs, the format the API validates
P_ADMIN = "00e000000000001AAA"
P_SALES = "00e000000000002AAA"
P_SUPPORT = "00e000000000003AAA"
P_ORPHAN = "00e000000000004AAA"

PS_ADMIN = "0PS000000000001AAA"
PS_SALES = "0PS000000000002AAA"
PS_SUPPORT = "0PS000000000003AAA"


def _obj(parent, sobject, read=False, create=False, edit=False, delete=False,
         view_all=False, modify_all=False):
    return {
        "ParentId": parent,
        "SobjectType": sobject,
        "PermissionsRead": read,
        "PermissionsCreate": create,
        "PermissionsEdit": edit,
        "PermissionsDelete": delete,
        "PermissionsViewAllRecords": view_all,
        "PermissionsModifyAllRecords": modify_all,
    }


def _field(parent, field, read=True, edit=False):
    return {
        "ParentId": parent,
        "SobjectType": field.split(".")[0],
        "Field": field,
        "PermissionsRead": read,
        "PermissionsEdit": edit,
    }


def _access(parent, entity_id, entity_type):
    return {"ParentId": parent, "SetupEntityId": entity_id, "SetupEntityType": entity_type}


class FakeProvider:
    """In-memory stand-in for SalesforceClient.

    ``fail`` names methods that raise ``SalesforceAPIError``; ``calls`` records
    every call with its arguments.
    """

    def __init__(self, fail=(), fail_code="PERMISSION_DENIED"):
        self.fail = set(fail)
        self.fail_code = fail_code
        self.calls: list[tuple] = []
        self.profiles = [
            {"Id": P_ADMIN, "Name": "System Administrator"},
            {"Id": P_SALES, "Name": "Sales User"},
            {"Id": P_SUPPORT, "Name": "Support User"},
            {"Id": P_ORPHAN, "Name": "Orphan Profile"},
        ]
        self.permission_sets = [
            {"Id": PS_ADMIN, "ProfileId": P_ADMIN},
            {"Id": PS_SALES, "ProfileId": P_SALES},
            {"Id": PS_SUPPORT, "ProfileId": P_SUPPORT},
        ]
        self.object_permissions = [
            _obj(PS_ADMIN, "Account", True, True, True, True, True, True),
            _obj(PS_SALES, "Account", True, True, True, False),
            _obj(PS_SUPPORT, "Account", read=True),
            _obj(PS_ADMIN, "Case", True, True, True, True),
        ]
        self.field_permissions = [
            _field(PS_ADMIN, "Account.Industry", edit=True),
            _field(PS_SALES, "Account.Industry"),
            # Sales can see Opportunity fields without an object row
            _field(PS_SALES, "Opportunity.Amount"),
        ]
        self.flag_rows = [
            {"Id": PS_ADMIN, "PermissionsViewSetup": True, "PermissionsApiEnabled": True},
            {"Id": PS_SALES, "PermissionsViewSetup": False, "PermissionsApiEnabled": True},
            {"Id": PS_SUPPORT, "PermissionsViewSetup": False, "PermissionsApiEnabled": False},
        ]
        self.flag_fields = ["PermissionsViewSetup", "PermissionsApiEnabled"]
        self.setup_entity_access = [
            _access(PS_ADMIN, "01p01", "ApexClass"),
            _access(PS_ADMIN, "01p02", "ApexClass"),
            _access(PS_SALES, "01p02", "ApexClass"),
            _access(PS_SALES, "01pXX", "ApexClass"),  # not in the catalog
            _access(PS_ADMIN, "066A1", "ApexPage"),
            _access(PS_ADMIN, "012R1", "RecordType"),
            _access(PS_SALES, "02uT1", "TabSet"),
            _access(PS_ADMIN, "01rC1", "CustomTab"),
            _access(PS_SALES, "0CP01", "CustomPermission"),
        ]
        self.apex_classes = {"01p01": "AdminUtils", "01p02": "Utils"}
        self.apex_pages = {"066A1": "AccountOverview"}
        self.record_types = [
            {"Id": "012R1", "SobjectType": "Account", "DeveloperName": "Partner"},
        ]
        self.custom_tabs = [{"Id": "01rC1", "DeveloperName": "Invoices"}]
        self.custom_apps = [{"Id": "02uT1", "Label": "Sales Console", "DeveloperName": "SalesConsole"}]

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise SalesforceAPIError(self.fail_code, f"{name} failed")

    async def get_all_profiles(self):
        self._record("get_all_profiles")
        return list(self.profiles)

    async def get_owned_permission_sets(self, profile_ids):
        self._record("get_owned_permission_sets", list(profile_ids))
        # SOQL matches 15-char IDs against 18-char values; rows come back 18-char
        wanted = {p[:15] for p in profile_ids}
        return [ps for ps in self.permission_sets if ps["ProfileId"][:15] in wanted]

    async def get_object_permissions(self, ids):
        self._record("get_object_permissions", list(ids))
        return [r for r in self.object_permissions if r["ParentId"] in ids]

    async def get_field_permissions(self, ids):
        self._record("get_field_permissions", list(ids))
        return [r for r in self.field_permissions if r["ParentId"] in ids]

    async def describe_permission_flags(self):
        self._record("describe_permission_flags")
        return list(self.flag_fields)

    async def get_permission_set_flags(self, ids, flag_fields):
        self._record("get_permission_set_flags", list(ids), list(flag_fields))
        return [
            {k: v for k, v in r.items() if k == "Id" or k in flag_fields}
            for r in self.flag_rows
            if r["Id"] in ids
        ]

    async def get_setup_entity_access(self, ids):
        self._record("get_setup_entity_access", list(ids))
        return [r for r in self.setup_entity_access if r["ParentId"] in ids]

    async def get_apex_classes(self, ids):
        self._record("get_apex_classes", list(ids))
        return [{"Id": i, "Name": self.apex_classes[i]} for i in ids if i in self.apex_classes]

    async def get_apex_pages(self, ids):
        self._record("get_apex_pages", list(ids))
        return [{"Id": i, "Name": self.apex_pages[i]} for i in ids if i in self.apex_pages]

    async def get_record_types(self):
        self._record("get_record_types")
        return list(self.record_types)

    async def get_custom_tabs(self):
        self._record("get_custom_tabs")
        return list(self.custom_tabs)

    async def get_custom_applications(self):
        self._record("get_custom_applications")
        return list(self.custom_apps)


def make_session(**overrides) -> SalesforceSession:
    values = dict(
        access_token="00Dxx!access-token",
        refresh_token="refresh-token",
        instance_url="https://example.my.salesforce.com",
        user_id="005000000000001AAA",
        organization_id="00D000000000001AAA",
        expires_at=4102444800,  # 2100-01-01
        environment="production",
    )
    values.update(overrides)
    return SalesforceSession(**values)


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def api(provider):
    """TestClient whose record provider is the in-memory fake."""
    app.dependency_overrides[get_record_provider] = lambda: provider
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def raw_api():
    """TestClient with no dependency overrides."""
    app.dependency_overrides.clear()
    return TestClient(app)


@pytest.fixture
def session_headers():
    return {"Authorization": f"Bearer {create_session_token(make_session())}"}
