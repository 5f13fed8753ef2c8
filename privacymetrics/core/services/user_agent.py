"""
User-Agent classification.

Maps a raw User-Agent header to a coarse DeviceType. The raw header is
never stored; only the resulting class is persisted on the session and
its events.

Key behaviors:
- Crawlers and scripted clients classify as OTHER
- Tablets are checked before phones (iPad and Android without "mobile")
- Anything that looks like a browser but is not a handheld is DESKTOP
- Missing or unrecognised headers classify as OTHER
"""

from __future__ import annotations

from dataclasses import dataclass

from privacymetrics.core.entities import DeviceType


@dataclass(frozen=True)
class UserAgentConfig:
    """Substring patterns, matched against the lower-cased header."""

    bot_patterns: tuple[str, ...] = (
        "bot",
        "crawler",
        "spider",
        "scraper",
        "wget",
        "curl",
        "python-requests",
        "python-httpx",
        "go-http-client",
        "java/",
        "libwww",
        "httpclient",
        "headlesschrome",
        "slurp",
        "facebookexternalhit",
        "baiduspider",
        "bytespider",
    )

    tablet_patterns: tuple[str, ...] = (
        "ipad",
        "tablet",
        "kindle",
        "silk/",
        "playbook",
    )

    mobile_patterns: tuple[str, ...] = (
        "mobi",
        "iphone",
        "ipod",
        "windows phone",
        "blackberry",
        "opera mini",
    )

    browser_patterns: tuple[str, ...] = (
        "mozilla/5.0",
        "chrome/",
        "firefox/",
        "safari/",
        "edge/",
        "opera/",
        "msie",
        "trident/",
    )


DEFAULT_CONFIG = UserAgentConfig()


def is_bot(user_agent: str | None, config: UserAgentConfig = DEFAULT_CONFIG) -> bool:
    if not user_agent:
        return False
    ua = user_agent.lower()
    return any(pattern in ua for pattern in config.bot_patterns)


def classify_device(
    user_agent: str | None,
    config: UserAgentConfig = DEFAULT_CONFIG,
) -> DeviceType:
    """
    Classify a User-Agent header into a device class.

    Android devices advertise "Mobile" on phones and omit it on tablets,
    so a bare "android" token is treated as a tablet.
    """
    if not user_agent or not user_agent.strip():
        return DeviceType.OTHER

    ua = user_agent.lower()

    if any(pattern in ua for pattern in config.bot_patterns):
        return DeviceType.OTHER

    if any(pattern in ua for pattern in config.tablet_patterns):
        return DeviceType.TABLET

    if "android" in ua and "mobile" not in ua:
        return DeviceType.TABLET

    if "android" in ua or any(pattern in ua for pattern in config.mobile_patterns):
        return DeviceType.MOBILE

    if any(pattern in ua for pattern in config.browser_patterns):
        return DeviceType.DESKTOP

    return DeviceType.OTHER
