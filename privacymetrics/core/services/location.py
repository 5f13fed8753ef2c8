"""
Coarse location estimation from the client's IANA timezone.

No IP geolocation is performed. Known zones map to a fixed
(country, region) pair; other zones fall back to splitting the zone
name, e.g. "America/Sao_Paulo" -> ("America", "Sao Paulo").
"""

from __future__ import annotations

from dataclasses import dataclass

TIMEZONE_LOCATIONS: dict[str, tuple[str, str]] = {
    "America/New_York": ("US", "Eastern"),
    "America/Chicago": ("US", "Central"),
    "America/Denver": ("US", "Mountain"),
    "America/Los_Angeles": ("US", "Pacific"),
    "Europe/London": ("UK", "London"),
    "Europe/Paris": ("France", "Paris"),
    "Europe/Berlin": ("Germany", "Berlin"),
    "Asia/Tokyo": ("Japan", "Tokyo"),
    "Asia/Shanghai": ("China", "Shanghai"),
    "Asia/Kolkata": ("India", "Kolkata"),
    "Australia/Sydney": ("Australia", "Sydney"),
}


@dataclass(frozen=True)
class Location:
    country: str | None = None
    region: str | None = None


def estimate_location(timezone: str | None) -> Location:
    if not timezone or not timezone.strip():
        return Location()

    tz = timezone.strip()
    known = TIMEZONE_LOCATIONS.get(tz)
    if known:
        return Location(country=known[0], region=known[1])

    parts = tz.split("/")
    if len(parts) < 2 or not parts[0]:
        return Location()

    # "America/Argentina/Buenos_Aires" -> region is the last component
    return Location(country=parts[0], region=parts[-1].replace("_", " ") or None)
