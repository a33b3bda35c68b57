"""Profile listing, single-profile inspection and N-way comparison endpoints."""

import logging
import re
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from ..auth import get_record_provider
from ..config import MAX_COMPARE_PROFILES, MIN_COMPARE_PROFILES
from ..normalizer import ProfileNormalizer
from ..profile_diff import compare
from ..salesforce_client import SalesforceAPIError
from ..schemas import (
    CompareRequest,
    CompareResponse,
    NormalizedProfile,
    ProfileListResponse,
    ProfileRef,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profiles", tags=["profiles"])

# Salesforce IDs are 15 (case-sensitive) or 18 characters
_PROFILE_ID_RE = re.compile(r"^[a-zA-Z0-9]{15,18}$")


def _raise_for_source_error(exc: Exception, message: str) -> NoReturn:
    if isinstance(exc, SalesforceAPIError) and exc.error_code == "SESSION_EXPIRED":
        raise HTTPException(
            status_code=401, detail="Session expired. Please re-authenticate."
        )
    raise HTTPException(status_code=500, detail=message)


@router.get("", response_model=ProfileListResponse)
async def list_profiles(provider=Depends(get_record_provider)):
    try:
        rows = await provider.get_all_profiles()
    except Exception as e:
        logger.exception("Error fetching profiles")
        _raise_for_source_error(e, "Failed to fetch profiles")
    return ProfileListResponse(
        profiles=[ProfileRef(id=r["Id"], name=r.get("Name", "")) for r in rows]
    )


# NOTE: /compare must be declared BEFORE /{profile_id}


@router.post(
    "/compare", response_model=CompareResponse, response_model_exclude_none=True
)
async def compare_profiles(
    req: CompareRequest,
    provider=Depends(get_record_provider),
):
    profile_ids = req.profile_ids
    if profile_ids is None:
        raise HTTPException(status_code=400, detail="profileIds array is required")
    if len(profile_ids) < MIN_COMPARE_PROFILES:
        raise HTTPException(
            status_code=400,
            detail=f"At least {MIN_COMPARE_PROFILES} profiles are required for comparison",
        )
    if len(profile_ids) > MAX_COMPARE_PROFILES:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {MAX_COMPARE_PROFILES} profiles can be compared at once",
        )
    invalid = [p for p in profile_ids if not _PROFILE_ID_RE.match(p)]
    if invalid:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid profile ID format: {', '.join(invalid)}",
        )

    logger.info(f"Comparing {len(profile_ids)} profiles: {', '.join(profile_ids)}")
    try:
        normalized = await ProfileNormalizer(provider).normalize_profiles(profile_ids)
    except Exception as e:
        logger.exception("Error comparing profiles")
        _raise_for_source_error(e, "Failed to compare profiles")

    if len(normalized) < MIN_COMPARE_PROFILES:
        raise HTTPException(status_code=400, detail="Could not find enough valid profiles")

    comparison = compare(normalized, include_unchanged=req.include_unchanged)
    logger.info(f"Comparison complete. Found {comparison.total_differences} differences.")
    return CompareResponse(comparison=comparison, profiles=normalized)


@router.get("/{profile_id}", response_model=NormalizedProfile)
async def get_profile(profile_id: str, provider=Depends(get_record_provider)):
    if not _PROFILE_ID_RE.match(profile_id):
        raise HTTPException(status_code=400, detail="Invalid profile ID format")
    try:
        normalized = await ProfileNormalizer(provider).normalize_profiles([profile_id])
    except Exception as e:
        logger.exception("Error fetching profile %s", profile_id)
        _raise_for_source_error(e, "Failed to fetch profile details")
    if not normalized:
        raise HTTPException(status_code=404, detail="Profile not found")
    return normalized[0]
