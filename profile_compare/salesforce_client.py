"""Thin async wrapper around the Salesforce REST and Tooling query APIs."""

import logging
import re
from typing import Iterable, Optional

import httpx

from .config import SF_API_TIMEOUT, SF_API_VERSION

logger = logging.getLogger(__name__)

# ── Error classification ─────────────────────────────────

ERROR_CODES = {
    "SESSION_EXPIRED": "Session expired. Re-authenticate with Salesforce.",
    "PERMISSION_DENIED": "Permission denied. The user lacks access to the requested metadata.",
    "QUERY_TOO_LARGE": "Query too large. Reduce the number of IDs per request.",
    "INVALID_QUERY": "Salesforce rejected the query as malformed.",
    "TIMEOUT": "Request timed out. The org may be large or unreachable.",
    "CONNECTION_ERROR": "Could not reach the Salesforce instance.",
    "UNKNOWN": "An unexpected error occurred.",
}


class SalesforceAPIError(Exception):
    """A classified failure talking to Salesforce."""

    def __init__(
        self,
        error_code: str,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.error_code}: {self.message} ({self.detail})"
        return f"{self.error_code}: {self.message}"


def _classify_error(exc: Exception) -> tuple[str, str]:
    """Return (error_code, readable_message) for common Salesforce/network errors."""
    if isinstance(exc, httpx.TimeoutException):
        return "TIMEOUT", ERROR_CODES["TIMEOUT"]

    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        body = exc.response.text
        if code == 401 or "INVALID_SESSION_ID" in body:
            return "SESSION_EXPIRED", ERROR_CODES["SESSION_EXPIRED"]
        if code == 403 or "INSUFFICIENT_ACCESS" in body:
            return "PERMISSION_DENIED", ERROR_CODES["PERMISSION_DENIED"]
        if code == 414:
            return "QUERY_TOO_LARGE", ERROR_CODES["QUERY_TOO_LARGE"]
        if code == 400 and ("MALFORMED_QUERY" in body or "INVALID_FIELD" in body):
            return "INVALID_QUERY", ERROR_CODES["INVALID_QUERY"]

    if isinstance(exc, httpx.TransportError):
        return "CONNECTION_ERROR", ERROR_CODES["CONNECTION_ERROR"]

    return "UNKNOWN", ERROR_CODES["UNKNOWN"]


def soql_id_list(ids: Iterable[str]) -> str:
    """Render IDs as a quoted SOQL ``IN`` list."""
    return ",".join(
        "'" + i.replace("\\", "\\\\").replace("'", "\\'") + "'" for i in ids
    )


_FROM_RE = re.compile(r"FROM\s+(\w+)", re.IGNORECASE)
_NEXT_RE = re.compile(r"/query/(.+)$")


class SalesforceClient:
    """Source record provider backed by a live Salesforce org."""

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = SF_API_VERSION,
        timeout: float = SF_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.instance_url = instance_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.base_url = f"{self.instance_url}/services/data/{api_version}"
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
            transport=self._transport,
        )

    async def _paginate(self, soql: str, prefix: str) -> list[dict]:
        records: list[dict] = []
        url: Optional[str] = f"{prefix}/query"
        params: Optional[dict] = {"q": " ".join(soql.split())}
        try:
            async with self._client() as client:
                while url:
                    resp = await client.get(url, params=params)
                    resp.raise_for_status()
                    data = resp.json()
                    records.extend(data.get("records", []))

                    # nextRecordsUrl is the full path; keep only the cursor
                    next_url = data.get("nextRecordsUrl")
                    match = _NEXT_RE.search(next_url) if next_url else None
                    url = f"{prefix}/query/{match.group(1)}" if match else None
                    params = None
        except httpx.HTTPError as e:
            error_code, readable_msg = _classify_error(e)
            m = _FROM_RE.search(soql)
            sobject = m.group(1) if m else "Unknown"
            detail = e.response.text if isinstance(e, httpx.HTTPStatusError) else str(e)
            logger.error(f"Query failed for {sobject}: {error_code} {detail}")
            raise SalesforceAPIError(
                error_code,
                readable_msg,
                status_code=e.response.status_code
                if isinstance(e, httpx.HTTPStatusError)
                else None,
                detail=detail,
            ) from e
        return records

    async def query(self, soql: str) -> list[dict]:
        """Run a SOQL query and follow ``nextRecordsUrl`` until exhausted."""
        return await self._paginate(soql, "")

    async def tooling_query(self, soql: str) -> list[dict]:
        """Same as :meth:`query` against the Tooling API (ApexClass, CustomTab, …)."""
        return await self._paginate(soql, "/tooling")

    # ── Profiles and their permission sets ──────────────────

    async def get_all_profiles(self) -> list[dict]:
        return await self.query(
            "SELECT Id, Name, UserLicenseId, UserType, Description "
            "FROM Profile ORDER BY Name"
        )

    async def get_owned_permission_sets(self, profile_ids: list[str]) -> list[dict]:
        """PermissionSet rows owned by *profile_ids* (one per profile at most)."""
        if not profile_ids:
            return []
        return await self.query(
            "SELECT Id, ProfileId FROM PermissionSet "
            "WHERE IsOwnedByProfile = true "
            f"AND ProfileId IN ({soql_id_list(profile_ids)})"
        )

    # ── Grants keyed by permission set ──────────────────────

    async def get_object_permissions(self, permission_set_ids: list[str]) -> list[dict]:
        if not permission_set_ids:
            return []
        return await self.query(
            "SELECT Id, ParentId, SobjectType, "
            "PermissionsCreate, PermissionsRead, PermissionsEdit, PermissionsDelete, "
            "PermissionsViewAllRecords, PermissionsModifyAllRecords "
            "FROM ObjectPermissions "
            f"WHERE ParentId IN ({soql_id_list(permission_set_ids)})"
        )

    async def get_field_permissions(self, permission_set_ids: list[str]) -> list[dict]:
        """Only rows where Read or Edit is granted come back; absence means no access."""
        if not permission_set_ids:
            return []
        return await self.query(
            "SELECT Id, ParentId, SobjectType, Field, PermissionsRead, PermissionsEdit "
            "FROM FieldPermissions "
            f"WHERE ParentId IN ({soql_id_list(permission_set_ids)})"
        )

    async def describe_permission_flags(self) -> list[str]:
        """Boolean ``Permissions*`` fields available on PermissionSet in this org."""
        try:
            async with self._client() as client:
                resp = await client.get("/sobjects/PermissionSet/describe")
                resp.raise_for_status()
                fields = resp.json().get("fields", [])
        except httpx.HTTPError as e:
            error_code, readable_msg = _classify_error(e)
            raise SalesforceAPIError(error_code, readable_msg, detail=str(e)) from e
        return [
            f["name"]
            for f in fields
            if f.get("name", "").startswith("Permissions") and f.get("type") == "boolean"
        ]

    async def get_permission_set_flags(
        self, permission_set_ids: list[str], flag_fields: list[str]
    ) -> list[dict]:
        if not permission_set_ids:
            return []
        columns = ", ".join(["Id", "Name", "ProfileId", "IsOwnedByProfile", *flag_fields])
        return await self.query(
            f"SELECT {columns} FROM PermissionSet "
            f"WHERE Id IN ({soql_id_list(permission_set_ids)})"
        )

    async def get_setup_entity_access(self, permission_set_ids: list[str]) -> list[dict]:
        if not permission_set_ids:
            return []
        return await self.query(
            "SELECT Id, ParentId, SetupEntityId, SetupEntityType "
            "FROM SetupEntityAccess "
            f"WHERE ParentId IN ({soql_id_list(permission_set_ids)})"
        )

    # ── Name catalogs ───────────────────────────────────────

    async def get_apex_classes(self, ids: list[str]) -> list[dict]:
        if not ids:
            return []
        return await self.tooling_query(
            f"SELECT Id, Name FROM ApexClass WHERE Id IN ({soql_id_list(ids)})"
        )

    async def get_apex_pages(self, ids: list[str]) -> list[dict]:
        if not ids:
            return []
        return await self.tooling_query(
            f"SELECT Id, Name FROM ApexPage WHERE Id IN ({soql_id_list(ids)})"
        )

    async def get_record_types(self) -> list[dict]:
        return await self.query(
            "SELECT Id, Name, SobjectType, DeveloperName "
            "FROM RecordType WHERE IsActive = true"
        )

    async def get_custom_tabs(self) -> list[dict]:
        return await self.tooling_query(
            "SELECT Id, DeveloperName, SobjectName FROM CustomTab"
        )

    async def get_custom_applications(self) -> list[dict]:
        return await self.tooling_query(
            "SELECT Id, DeveloperName, Label FROM CustomApplication"
        )
