"""Fetch, group and normalize profile permission data."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .aggregator import extract_flags, group_by_profile
from .builder import build_normalized_profile
from .config import FALLBACK_PERMISSION_FIELDS, SYSTEM_PERMISSION_FIELDS
from .containers import id15, resolve_permission_containers
from .entity_names import EntityNameResolver
from .schemas import NormalizedProfile

logger = logging.getLogger(__name__)


class ProfileNormalizer:
    """Builds :class:`NormalizedProfile` documents from a record provider.

    *provider* is anything exposing the :class:`SalesforceClient` fetch methods.
    *flag_fields* is the declared set of PermissionSet boolean fields; when
    empty the provider is asked to describe them.
    """

    def __init__(self, provider, flag_fields: Optional[list[str]] = None):
        self.provider = provider
        self.flag_fields = list(flag_fields or SYSTEM_PERMISSION_FIELDS)

    async def _flag_fields(self) -> list[str]:
        if self.flag_fields:
            return self.flag_fields
        try:
            return await self.provider.describe_permission_flags()
        except Exception as e:
            logger.warning("Could not describe PermissionSet, using basic fields: %s", e)
            return list(FALLBACK_PERMISSION_FIELDS)

    async def _container_flags(self, container_ids: list[str]) -> dict[str, dict[str, bool]]:
        fields = await self._flag_fields()
        rows = await self.provider.get_permission_set_flags(container_ids, fields)
        return {row["Id"]: extract_flags(row, fields) for row in rows if row.get("Id")}

    @staticmethod
    async def _fetch_or_empty(label: str, coro, empty):
        try:
            result = await coro
        except Exception as e:
            logger.warning(f"  ✗ Failed to fetch {label}: {e}")
            return empty
        logger.info(f"  ✓ {label}: {len(result)} records")
        return result

    async def normalize_profiles(self, profile_ids: list[str]) -> list[NormalizedProfile]:
        """Normalize *profile_ids*, in request order.

        Profiles that do not exist or own no permission set are left out, so the
        result may be shorter than the input.
        """
        # 15- and 18-char forms of one ID name the same profile
        unique: dict[str, str] = {}
        for p in profile_ids:
            unique.setdefault(id15(p), p)
        profile_ids = list(unique.values())
        logger.info(f"Normalizing {len(profile_ids)} profiles...")

        identities = {
            id15(p["Id"]): p.get("Name", "") for p in await self.provider.get_all_profiles()
        }
        containers = await resolve_permission_containers(self.provider, profile_ids)
        container_ids = containers.container_ids

        logger.info("Fetching permissions data in parallel...")
        object_perms, field_perms, flags, access = await asyncio.gather(
            self._fetch_or_empty(
                "Object permissions",
                self.provider.get_object_permissions(container_ids),
                [],
            ),
            self._fetch_or_empty(
                "Field permissions",
                self.provider.get_field_permissions(container_ids),
                [],
            ),
            self._fetch_or_empty(
                "Permission sets (system perms)",
                self._container_flags(container_ids),
                {},
            ),
            self._fetch_or_empty(
                "Setup entity access",
                self.provider.get_setup_entity_access(container_ids),
                [],
            ),
        )

        names = await EntityNameResolver(self.provider).resolve(access)

        bundles = group_by_profile(
            profile_ids,
            containers,
            object_perms,
            field_perms,
            flags,
            access,
            names,
        )

        normalized: list[NormalizedProfile] = []
        for profile_id in profile_ids:
            bundle = bundles.get(profile_id)
            if bundle is None or id15(profile_id) not in identities:
                continue
            normalized.append(
                build_normalized_profile(profile_id, identities[id15(profile_id)], bundle)
            )

        logger.info(f"Normalization complete for {len(normalized)} profiles")
        return normalized


async def normalize_profiles(
    provider, profile_ids: list[str], flag_fields: Optional[list[str]] = None
) -> list[NormalizedProfile]:
    return await ProfileNormalizer(provider, flag_fields).normalize_profiles(profile_ids)
