"""Platform detection from ambient request signals.

Signals are checked in priority order (query parameter, hostname, path,
referrer, stored preference) and the first match wins. Retail is the
fallback, so a partner or corporate identity is never granted by omission.
"""
import logging
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional, Tuple

from app.core.config import settings
from app.core.enums import DetectionSignal, Platform
from app.core.errors import SignalEvaluationFailure
from app.core.metrics import platform_resolutions
from app.schemas.platform import DisplayFlags, PlatformResolution, RequestSignals
from app.services.preferences import InMemoryPreferenceStore, PreferenceStore

logger = logging.getLogger(__name__)


class DetectionRules(NamedTuple):
    params: Tuple[str, ...]
    domains: Tuple[str, ...]
    paths: Tuple[str, ...]
    referrers: Tuple[str, ...]


# Retail is declared last: its apex domain would otherwise claim every
# partner and corporate subdomain through the suffix match.
DETECTION_RULES: Mapping[Platform, DetectionRules] = MappingProxyType({
    Platform.PARTNER: DetectionRules(
        params=("source=gnet", "partner=gnet", "utm_source=gnet", "platform=gnet"),
        domains=("gnet.tntlimousine.com", "partners.tntlimousine.com"),
        paths=("/gnet", "/partner", "/affiliate"),
        referrers=("gnet.com", "partner-portal.com"),
    ),
    Platform.CORPORATE: DetectionRules(
        params=("source=corporate", "client=capitalone", "platform=groundspan", "corporate=true"),
        domains=("corporate.tntlimousine.com", "capitalone.tntlimousine.com"),
        paths=("/corporate", "/groundspan", "/capitalone"),
        referrers=("capitalone.com", "groundspan.com"),
    ),
    Platform.RETAIL: DetectionRules(
        params=("source=website", "utm_source=organic", "type=retail"),
        domains=("tntlimousine.com", "localhost"),
        paths=("/pricing", "/quote", "/retail"),
        referrers=("google.com", "bing.com", "facebook.com"),
    ),
})


def _first_values(pairs) -> dict:
    values = {}
    for key, value in pairs:
        values.setdefault(key.strip().lower(), value)
    return values


def _hostname(raw: str) -> str:
    host = raw.strip().lower().rstrip(".")
    if host.startswith("["):
        return host
    return host.split(":", 1)[0]


class PlatformResolver:

    def __init__(
        self,
        rules: Mapping[Platform, DetectionRules] = DETECTION_RULES,
        session_store: Optional[PreferenceStore] = None,
        persistent_store: Optional[PreferenceStore] = None,
    ):
        self.rules = rules
        self.session_store = session_store
        self.persistent_store = persistent_store

    def check_query_params(self, signals: RequestSignals) -> Optional[Tuple[Platform, str]]:
        params = _first_values(signals.query_params)
        if not params:
            return None
        for platform, rules in self.rules.items():
            for pattern in rules.params:
                if "=" in pattern:
                    key, expected = pattern.split("=", 1)
                    value = params.get(key)
                    if value is not None and value.strip().lower() == expected:
                        return platform, pattern
                elif pattern in params:
                    return platform, pattern
        return None

    def check_hostname(self, signals: RequestSignals) -> Optional[Tuple[Platform, str]]:
        hostname = _hostname(signals.hostname)
        if not hostname:
            return None
        for platform, rules in self.rules.items():
            for domain in rules.domains:
                if hostname == domain or hostname.endswith("." + domain):
                    return platform, domain
        return None

    def check_path(self, signals: RequestSignals) -> Optional[Tuple[Platform, str]]:
        path = signals.path.lower()
        if not path:
            return None
        for platform, rules in self.rules.items():
            for fragment in rules.paths:
                if fragment in path:
                    return platform, fragment
        return None

    def check_referrer(self, signals: RequestSignals) -> Optional[Tuple[Platform, str]]:
        referrer = signals.referrer.strip().lower()
        if not referrer:
            return None
        for platform, rules in self.rules.items():
            for domain in rules.referrers:
                if domain in referrer:
                    return platform, domain
        return None

    def stored_preference(self, visitor_key: Optional[str]) -> Optional[Platform]:
        if not visitor_key:
            return None
        for store in (self.session_store, self.persistent_store):
            if store is None:
                continue
            platform = Platform.parse(store.get(visitor_key))
            if platform is not None:
                return platform
        return None

    def remember(self, visitor_key: Optional[str], platform: Platform) -> None:
        if not visitor_key:
            return
        for store in (self.session_store, self.persistent_store):
            if store is None:
                continue
            try:
                store.set(visitor_key, platform)
            except Exception as e:
                logger.warning(f"Could not store platform preference: {e}")

    def detect(self, signals: RequestSignals, stored_preference=None) -> PlatformResolution:
        checks = (
            (DetectionSignal.QUERY_PARAM, self.check_query_params),
            (DetectionSignal.SUBDOMAIN, self.check_hostname),
            (DetectionSignal.PATH, self.check_path),
            (DetectionSignal.REFERRER, self.check_referrer),
        )
        for signal, check in checks:
            try:
                match = check(signals)
            except Exception as e:
                logger.warning(str(SignalEvaluationFailure(signal, e)))
                continue
            if match is None:
                continue
            platform, rule = match
            logger.info(f"Platform detected via {signal}: {rule} -> {platform}")
            self.remember(signals.visitor_key, platform)
            return self._resolved(platform, signal, rule)

        try:
            stored = Platform.parse(stored_preference) if stored_preference is not None \
                else self.stored_preference(signals.visitor_key)
        except Exception as e:
            logger.warning(str(SignalEvaluationFailure(DetectionSignal.STORED_PREFERENCE, e)))
            stored = None
        if stored is not None:
            return self._resolved(stored, DetectionSignal.STORED_PREFERENCE)

        return self._resolved(Platform.RETAIL, DetectionSignal.DEFAULT)

    def resolve(self, signals: RequestSignals, stored_preference=None) -> Platform:
        return self.detect(signals, stored_preference).platform

    def override(self, visitor_key: Optional[str], platform) -> Optional[Platform]:
        """Force a platform for a visitor. Unknown identities are ignored."""
        parsed = Platform.parse(platform)
        if parsed is None:
            logger.warning(f"Ignoring override to unknown platform {platform!r}")
            return None
        self.remember(visitor_key, parsed)
        return parsed

    @staticmethod
    def _resolved(platform: Platform, signal: DetectionSignal, rule: Optional[str] = None) -> PlatformResolution:
        platform_resolutions.labels(platform=platform.value, signal=signal.value).inc()
        return PlatformResolution(platform=platform, signal=signal, matched_rule=rule)


def display_flags(platform: Platform) -> DisplayFlags:
    return DisplayFlags(
        show_commission=platform == Platform.PARTNER and settings.SHOW_PARTNER_COMMISSION,
        show_corporate_rates_badge=platform == Platform.CORPORATE,
        show_full_breakdown=settings.SHOW_FULL_BREAKDOWN,
    )


@lru_cache(maxsize=1)
def get_platform_resolver() -> PlatformResolver:
    return PlatformResolver(
        session_store=InMemoryPreferenceStore(settings.SESSION_PREFERENCE_TTL, settings.PREFERENCE_STORE_MAX_ITEMS),
        persistent_store=InMemoryPreferenceStore(settings.PERSISTENT_PREFERENCE_TTL, settings.PREFERENCE_STORE_MAX_ITEMS),
    )
