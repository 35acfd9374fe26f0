"""Request-scoped dependencies shared by the routers"""
import uuid
from typing import Optional
from urllib.parse import parse_qsl, urlsplit

from fastapi import Depends, Header, Request, Response

from app.core.config import settings
from app.schemas.platform import PlatformResolution, RequestSignals
from app.services.platform_resolver import PlatformResolver, get_platform_resolver


def visitor_key(request: Request, response: Response) -> str:
    key = request.cookies.get(settings.VISITOR_COOKIE) or request.headers.get("x-visitor-id")
    if not key:
        key = uuid.uuid4().hex
        response.set_cookie(settings.VISITOR_COOKIE, key, httponly=True, samesite="lax")
    return key


def request_signals(
    request: Request,
    visitor: str = Depends(visitor_key),
    page_url: Optional[str] = Header(None, alias="X-Page-Url"),
    page_referrer: Optional[str] = Header(None, alias="X-Page-Referrer"),
) -> RequestSignals:
    """Signals of the page the visitor is on.

    Browser pages calling the API pass their own location in ``X-Page-Url``
    (and ``document.referrer`` in ``X-Page-Referrer``); without it the API
    request's own host, query string and Referer header are used. The API
    route path is never treated as a page path.
    """
    if page_url:
        parts = urlsplit(page_url)
        return RequestSignals(
            query_params=tuple(parse_qsl(parts.query, keep_blank_values=True)),
            hostname=parts.hostname or "",
            path=parts.path,
            referrer=page_referrer or "",
            visitor_key=visitor,
        )

    return RequestSignals(
        query_params=tuple(request.query_params.multi_items()),
        hostname=request.url.hostname or "",
        path="",
        referrer=request.headers.get("referer", ""),
        visitor_key=visitor,
    )


def resolved_platform(
    signals: RequestSignals = Depends(request_signals),
    resolver: PlatformResolver = Depends(get_platform_resolver),
) -> PlatformResolution:
    return resolver.detect(signals)
