"""
Identity resolution: fingerprints and session segments.

Key behaviors:
- The client IP is salted and hashed before use and never persisted
- Fingerprints are scoped to one website, so the same browser cannot be
  correlated across sites
- Visitors and sessions are written with keyed upserts, never with
  read-count-add-write-back
- A client session token that is idle longer than the timeout starts a
  new segment "<token>#<n>"
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from privacymetrics.core.entities import DeviceType, Session, Visitor
from privacymetrics.core.errors import WebsiteNotFoundError

from .ports import UnitOfWorkPort

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "#"


@dataclass(frozen=True)
class IdentityConfig:
    salt: str
    session_timeout_minutes: int = 30


# --- Pure functions ---


def hash_ip(ip: str | None, salt: str) -> str:
    """One-way hash of the client IP with the server-side salt."""
    return hashlib.sha256(f"{ip or ''}{salt}".encode()).hexdigest()


def derive_fingerprint(website_id: str, hashed_ip: str, visitor_token: str | None = None) -> str:
    """
    Stable per (browser, website) identifier.

    With a client token the token, the website id and the hashed IP are
    hashed together; without one only the website id and hashed IP are
    used, which groups visitors behind the same address.
    """
    if visitor_token:
        material = f"{visitor_token}{website_id}{hashed_ip}"
    else:
        material = f"{website_id}{hashed_ip}"
    return hashlib.sha256(material.encode()).hexdigest()


def segment_session_id(client_session_id: str, segment: int) -> str:
    if segment == 0:
        return client_session_id
    return f"{client_session_id}{SEGMENT_SEPARATOR}{segment}"


def is_session_open(session: Session, event_at: datetime, timeout: timedelta) -> bool:
    """Events at or before last activity plus the timeout join the session."""
    return event_at <= session.last_activity_at + timeout


# --- Service ---


class IdentityResolver:
    """
    Resolves visitors and sessions inside the caller's unit of work.

    The resolver never commits; the caller owns the transaction so that
    visitor, session and event writes for one beacon land together.
    """

    def __init__(self, config: IdentityConfig) -> None:
        self._config = config
        self._timeout = timedelta(minutes=config.session_timeout_minutes)

    def fingerprint_for(self, website_id: str, client_ip: str | None, visitor_token: str | None) -> str:
        return derive_fingerprint(website_id, hash_ip(client_ip, self._config.salt), visitor_token)

    def resolve_visitor(
        self,
        uow: UnitOfWorkPort,
        website_id: str,
        client_ip: str | None,
        visitor_token: str | None,
        seen_at: datetime,
        page_view_increment: int = 1,
        country: str | None = None,
        region: str | None = None,
        language: str | None = None,
    ) -> Visitor:
        """
        Insert or bump the visitor for this beacon.

        Raises:
            WebsiteNotFoundError: website unknown or inactive.
        """
        website = uow.websites.get_by_id(website_id)
        if website is None or not website.is_active:
            raise WebsiteNotFoundError(website_id)

        fingerprint = self.fingerprint_for(website_id, client_ip, visitor_token)
        return uow.visitors.upsert(
            website_id=website_id,
            fingerprint=fingerprint,
            seen_at=seen_at,
            page_view_increment=page_view_increment,
            country=country,
            region=region,
            language=language,
        )

    def resolve_session(
        self,
        uow: UnitOfWorkPort,
        website_id: str,
        visitor_id: str,
        client_session_id: str,
        event_at: datetime,
        page_increment: int = 1,
        duration_increment: int = 0,
        device_type: DeviceType = DeviceType.OTHER,
    ) -> Session:
        latest = uow.sessions.get_latest_segment(website_id, client_session_id)

        if latest is None:
            segment = 0
        elif is_session_open(latest, event_at, self._timeout):
            segment = latest.segment
        else:
            segment = latest.segment + 1
            logger.debug(
                "Session %s idle past timeout, opening segment %d",
                client_session_id,
                segment,
            )

        return uow.sessions.upsert(
            session_id=segment_session_id(client_session_id, segment),
            website_id=website_id,
            visitor_id=visitor_id,
            client_session_id=client_session_id,
            segment=segment,
            event_at=event_at,
            page_increment=page_increment,
            duration_increment=duration_increment,
            device_type=device_type,
        )


def create_identity_resolver(salt: str, session_timeout_minutes: int = 30) -> IdentityResolver:
    return IdentityResolver(IdentityConfig(salt=salt, session_timeout_minutes=session_timeout_minutes))
