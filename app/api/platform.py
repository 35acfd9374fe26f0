from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import resolved_platform, visitor_key
from app.core.config import settings
from app.core.enums import DetectionSignal
from app.schemas.platform import PlatformOut, PlatformOverride, PlatformResolution
from app.services.platform_resolver import PlatformResolver, display_flags, get_platform_resolver

router = APIRouter(prefix="/platform", tags=["platform"])


@router.get("", response_model=PlatformOut)
async def get_platform(resolution: PlatformResolution = Depends(resolved_platform)):
    return PlatformOut(
        platform=resolution.platform,
        signal=resolution.signal,
        matched_rule=resolution.matched_rule,
        display=display_flags(resolution.platform),
    )


@router.post("/override", response_model=PlatformOut)
async def override_platform(
    payload: PlatformOverride,
    visitor: str = Depends(visitor_key),
    resolver: PlatformResolver = Depends(get_platform_resolver),
):
    """Admin/testing escape hatch: pin a platform for this visitor"""
    if not settings.PLATFORM_OVERRIDE_ENABLED:
        raise HTTPException(status_code=403, detail="Platform override is disabled")

    platform = resolver.override(visitor, payload.platform)
    if platform is None:
        raise HTTPException(status_code=400, detail=f"Unknown platform '{payload.platform}'")

    return PlatformOut(
        platform=platform,
        signal=DetectionSignal.STORED_PREFERENCE,
        display=display_flags(platform),
    )
