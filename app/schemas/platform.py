from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import DetectionSignal, Platform


class RequestSignals(BaseModel):
    """Ambient request data the resolver inspects.

    Query parameter values must already be URL-decoded by whoever builds this.
    """
    model_config = ConfigDict(frozen=True)

    query_params: Tuple[Tuple[str, str], ...] = ()
    hostname: str = ""
    path: str = ""
    referrer: str = ""
    visitor_key: Optional[str] = None


class PlatformResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: Platform
    signal: DetectionSignal
    matched_rule: Optional[str] = None


class DisplayFlags(BaseModel):
    show_commission: bool = False
    show_corporate_rates_badge: bool = False
    show_full_breakdown: bool = False


class PlatformOut(BaseModel):
    platform: Platform
    signal: DetectionSignal
    matched_rule: Optional[str] = None
    display: DisplayFlags


class PlatformOverride(BaseModel):
    platform: str = Field(..., min_length=1)
