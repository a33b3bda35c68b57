"""Resolve SetupEntityAccess entity IDs to display names."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .config import NAME_LOOKUP_BATCH_SIZE

logger = logging.getLogger(__name__)


@dataclass
class EntityNames:
    """id → name maps, one per entity type that needs resolving."""

    apex_classes: dict[str, str] = field(default_factory=dict)
    apex_pages: dict[str, str] = field(default_factory=dict)
    record_types: dict[str, str] = field(default_factory=dict)
    custom_tabs: dict[str, str] = field(default_factory=dict)
    custom_apps: dict[str, str] = field(default_factory=dict)


def _batched(items: list[str], size: int):
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _ids_of_type(access_rows: list[dict], entity_type: str) -> list[str]:
    seen: dict[str, None] = {}
    for row in access_rows:
        if row.get("SetupEntityType") == entity_type and row.get("SetupEntityId"):
            seen.setdefault(row["SetupEntityId"], None)
    return list(seen)


class EntityNameResolver:
    def __init__(self, provider, batch_size: int = NAME_LOOKUP_BATCH_SIZE):
        self.provider = provider
        self.batch_size = max(1, batch_size)

    async def _lookup_by_ids(self, fetch, ids: list[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        for batch in _batched(ids, self.batch_size):
            for row in await fetch(batch):
                names[row["Id"]] = row["Name"]
        return names

    async def _record_types(self) -> dict[str, str]:
        return {
            rt["Id"]: f"{rt.get('SobjectType')}.{rt.get('DeveloperName')}"
            for rt in await self.provider.get_record_types()
        }

    async def _custom_tabs(self) -> dict[str, str]:
        return {
            tab["Id"]: tab.get("DeveloperName") or tab.get("SobjectName") or tab["Id"]
            for tab in await self.provider.get_custom_tabs()
        }

    async def _custom_apps(self) -> dict[str, str]:
        return {
            app["Id"]: app.get("Label") or app.get("DeveloperName")
            for app in await self.provider.get_custom_applications()
            if app.get("Label") or app.get("DeveloperName")
        }

    @staticmethod
    async def _or_empty(label: str, coro) -> dict[str, str]:
        try:
            return await coro
        except Exception as e:
            logger.warning("Could not fetch %s names: %s", label, e)
            return {}

    async def resolve(self, access_rows: list[dict]) -> EntityNames:
        """Resolve every lookup category concurrently; a failed category is empty."""
        class_ids = _ids_of_type(access_rows, "ApexClass")
        page_ids = _ids_of_type(access_rows, "ApexPage")

        classes, pages, record_types, tabs, apps = await asyncio.gather(
            self._or_empty(
                "Apex class",
                self._lookup_by_ids(self.provider.get_apex_classes, class_ids),
            ),
            self._or_empty(
                "Apex page",
                self._lookup_by_ids(self.provider.get_apex_pages, page_ids),
            ),
            self._or_empty("record type", self._record_types()),
            self._or_empty("custom tab", self._custom_tabs()),
            self._or_empty("custom app", self._custom_apps()),
        )

        logger.info(f"  ✓ Apex class names: {len(classes)} resolved")
        logger.info(f"  ✓ Apex page names: {len(pages)} resolved")
        logger.info(f"  ✓ Record types: {len(record_types)} found")
        logger.info(f"  ✓ Custom tabs: {len(tabs)} found")
        logger.info(f"  ✓ Custom apps: {len(apps)} found")

        return EntityNames(
            apex_classes=classes,
            apex_pages=pages,
            record_types=record_types,
            custom_tabs=tabs,
            custom_apps=apps,
        )
