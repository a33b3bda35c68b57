import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ── Normalized profile ───────────────────────────────────


class ObjectPermission(CamelModel):
    read: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False
    view_all: bool = False
    modify_all: bool = False


class FieldPermission(CamelModel):
    read: bool = False
    edit: bool = False


class ObjectAccess(CamelModel):
    permissions: ObjectPermission = Field(default_factory=ObjectPermission)
    fields: Dict[str, FieldPermission] = {}


class AppVisibility(CamelModel):
    visible: bool = False
    default: bool = False


class NormalizedProfile(CamelModel):
    profile_id: str
    profile_name: str
    objects: Dict[str, ObjectAccess] = {}
    system_permissions: Dict[str, bool] = {}
    apex_classes: List[str] = []
    visualforce_pages: List[str] = []
    lightning_pages: List[str] = []
    record_types: List[str] = []  # "Object.DeveloperName"
    tab_visibilities: Dict[str, str] = {}
    app_visibilities: Dict[str, AppVisibility] = {}
    # Same data as system_permissions
    user_permissions: Dict[str, bool] = {}


# ── Comparison ───────────────────────────────────────────


class DiffType(str, enum.Enum):
    added = "added"
    removed = "removed"
    changed = "changed"
    unchanged = "unchanged"


class DiffCategory(str, enum.Enum):
    object_permission = "objectPermission"
    field_permission = "fieldPermission"
    system_permission = "systemPermission"
    apex_class = "apexClass"
    visualforce_page = "visualforcePage"
    lightning_page = "lightningPage"
    record_type = "recordType"
    tab_visibility = "tabVisibility"
    app_visibility = "appVisibility"


# Summary counter key for each category
SUMMARY_KEYS: Dict[DiffCategory, str] = {
    DiffCategory.object_permission: "objectPermissions",
    DiffCategory.field_permission: "fieldPermissions",
    DiffCategory.system_permission: "systemPermissions",
    DiffCategory.apex_class: "apexClasses",
    DiffCategory.visualforce_page: "visualforcePages",
    DiffCategory.lightning_page: "lightningPages",
    DiffCategory.record_type: "recordTypes",
    DiffCategory.tab_visibility: "tabVisibilities",
    DiffCategory.app_visibility: "appVisibilities",
}


class DiffItem(CamelModel):
    path: str
    category: DiffCategory
    object_name: Optional[str] = None
    field_name: Optional[str] = None
    permission_name: Optional[str] = None
    values: Dict[str, Any] = {}
    diff_type: DiffType


class ProfileRef(CamelModel):
    id: str
    name: str


class ComparisonResult(CamelModel):
    profiles: List[ProfileRef] = []
    timestamp: datetime
    total_differences: int = 0
    differences: List[DiffItem] = []
    summary: Dict[str, int] = {}


# ── API ──────────────────────────────────────────────────


class ProfileListResponse(CamelModel):
    profiles: List[ProfileRef] = []


class CompareRequest(CamelModel):
    profile_ids: Optional[List[str]] = None
    include_unchanged: bool = False


class CompareResponse(CamelModel):
    comparison: ComparisonResult
    profiles: List[NormalizedProfile] = []


class AuthStatusOut(CamelModel):
    authenticated: bool
    expired: bool = False
    instance_url: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
