"""
Traffic attribution: UTM parameters and referrer classification.

UTM parameters are read from the page URL's query string at ingest
time and stored on the event. Referrers are stored raw; the channel
label ("Organic Search (Google)", "Social (Reddit)", "Direct", ...) is
derived at read time so that classification rules can change without
rewriting history.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlparse

DIRECT = "Direct"


class TrafficSource(str, Enum):
    DIRECT = "direct"
    ORGANIC_SEARCH = "organic_search"
    PAID_SEARCH = "paid_search"
    SOCIAL = "social"
    EMAIL = "email"
    REFERRAL = "referral"
    DISPLAY = "display"


@dataclass(frozen=True)
class AttributionConfig:
    search_engine_domains: tuple[tuple[str, str], ...] = (
        ("google.", "google"),
        ("bing.", "bing"),
        ("yahoo.", "yahoo"),
        ("duckduckgo.", "duckduckgo"),
        ("baidu.", "baidu"),
        ("yandex.", "yandex"),
        ("ecosia.", "ecosia"),
    )

    social_network_domains: tuple[tuple[str, str], ...] = (
        ("facebook.", "facebook"),
        ("twitter.", "twitter"),
        ("x.com", "twitter"),
        ("t.co", "twitter"),
        ("linkedin.", "linkedin"),
        ("lnkd.", "linkedin"),
        ("instagram.", "instagram"),
        ("pinterest.", "pinterest"),
        ("reddit.", "reddit"),
        ("youtube.", "youtube"),
        ("youtu.be", "youtube"),
        ("tiktok.", "tiktok"),
        ("mastodon.", "mastodon"),
    )

    medium_to_source: tuple[tuple[str, TrafficSource], ...] = (
        ("cpc", TrafficSource.PAID_SEARCH),
        ("ppc", TrafficSource.PAID_SEARCH),
        ("paid", TrafficSource.PAID_SEARCH),
        ("email", TrafficSource.EMAIL),
        ("newsletter", TrafficSource.EMAIL),
        ("social", TrafficSource.SOCIAL),
        ("display", TrafficSource.DISPLAY),
        ("banner", TrafficSource.DISPLAY),
        ("cpm", TrafficSource.DISPLAY),
        ("organic", TrafficSource.ORGANIC_SEARCH),
        ("referral", TrafficSource.REFERRAL),
    )


DEFAULT_CONFIG = AttributionConfig()


@dataclass(frozen=True)
class UTMParams:
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None

    def has_any(self) -> bool:
        return any([self.source, self.medium, self.campaign])


@dataclass(frozen=True)
class ReferrerInfo:
    url: str | None = None
    domain: str | None = None
    subdomain: str | None = None
    search_engine: str | None = None
    social_network: str | None = None


def parse_utm_params(page_url: str | None) -> UTMParams:
    """
    Extract utm_source/utm_medium/utm_campaign from a page URL.

    Values are stripped and lower-cased; blanks become None.
    """
    if not page_url:
        return UTMParams()

    query = parse_qs(urlparse(page_url).query)

    def get_param(key: str) -> str | None:
        values = query.get(f"utm_{key}")
        if not values:
            return None
        return values[0].strip().lower() or None

    return UTMParams(
        source=get_param("source"),
        medium=get_param("medium"),
        campaign=get_param("campaign"),
    )


def parse_domain(url: str | None) -> tuple[str | None, str | None]:
    """
    Extract (registrable domain, subdomain) from a URL.

    Handles the common two-part country TLDs such as .co.uk.
    """
    if not url:
        return None, None

    host = (urlparse(url).hostname or "").lower()
    if not host:
        return None, None

    parts = host.split(".")
    if len(parts) < 2:
        return host, None

    if parts[-1] in ("uk", "au", "nz", "jp", "br") and len(parts) >= 3 and parts[-2] in (
        "co",
        "com",
        "org",
        "net",
        "ac",
    ):
        domain = ".".join(parts[-3:])
        subdomain = ".".join(parts[:-3]) or None
    else:
        domain = ".".join(parts[-2:])
        subdomain = ".".join(parts[:-2]) or None

    return domain, subdomain


def _host_matches(host: str, pattern: str) -> bool:
    """
    "google." matches any host with a "google" label; "t.co" matches
    t.co and its subdomains only.
    """
    if pattern.endswith("."):
        return pattern[:-1] in host.split(".")
    return host == pattern or host.endswith(f".{pattern}")


def parse_referrer(
    url: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> ReferrerInfo:
    if not url:
        return ReferrerInfo()

    domain, subdomain = parse_domain(url)
    if not domain:
        return ReferrerInfo(url=url)

    host = f"{subdomain}.{domain}" if subdomain else domain
    search_engine = next(
        (name for pattern, name in config.search_engine_domains if _host_matches(host, pattern)),
        None,
    )
    social_network = next(
        (name for pattern, name in config.social_network_domains if _host_matches(host, pattern)),
        None,
    )

    return ReferrerInfo(
        url=url,
        domain=domain,
        subdomain=subdomain,
        search_engine=search_engine,
        social_network=social_network,
    )


def classify_traffic_source(
    utm: UTMParams,
    referrer: ReferrerInfo,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> TrafficSource:
    """
    Classify a visit.

    Priority: UTM medium, UTM source, referrer, then direct.
    """
    if utm.medium:
        for medium, source in config.medium_to_source:
            if utm.medium == medium:
                return source

    if utm.source:
        for pattern, _ in config.search_engine_domains:
            if pattern.rstrip(".") in utm.source:
                return TrafficSource.ORGANIC_SEARCH
        for pattern, _ in config.social_network_domains:
            if pattern.rstrip(".") in utm.source:
                return TrafficSource.SOCIAL
        if "email" in utm.source or "newsletter" in utm.source:
            return TrafficSource.EMAIL

    if referrer.search_engine:
        return TrafficSource.ORGANIC_SEARCH
    if referrer.social_network:
        return TrafficSource.SOCIAL
    if referrer.domain:
        return TrafficSource.REFERRAL

    return TrafficSource.DIRECT


def get_channel_name(
    source: TrafficSource,
    utm: UTMParams,
    referrer: ReferrerInfo,
) -> str:
    """Human-readable channel label."""
    if source == TrafficSource.DIRECT:
        return DIRECT

    if source == TrafficSource.ORGANIC_SEARCH:
        name = referrer.search_engine or utm.source
        return f"Organic Search ({name.title()})" if name else "Organic Search"

    if source == TrafficSource.PAID_SEARCH:
        return f"Paid Search ({utm.source.title()})" if utm.source else "Paid Search"

    if source == TrafficSource.SOCIAL:
        name = referrer.social_network or utm.source
        return f"Social ({name.title()})" if name else "Social"

    if source == TrafficSource.EMAIL:
        return f"Email ({utm.campaign})" if utm.campaign else "Email"

    if source == TrafficSource.REFERRAL:
        return f"Referral ({referrer.domain})" if referrer.domain else "Referral"

    return "Display"


def channel_for_referrer(
    referrer_url: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> str:
    """Channel label for a raw stored referrer; empty or missing is Direct."""
    utm = UTMParams()
    referrer = parse_referrer(referrer_url, config)
    return get_channel_name(classify_traffic_source(utm, referrer, config), utm, referrer)
