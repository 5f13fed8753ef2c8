"""
Tests for referrer parsing and channel attribution.
"""

from __future__ import annotations

import pytest

from privacymetrics.core.services.attribution import (
    DIRECT,
    TrafficSource,
    UTMParams,
    channel_for_referrer,
    classify_traffic_source,
    get_channel_name,
    parse_domain,
    parse_referrer,
    parse_utm_params,
)


class TestParseUtm:
    def test_extracts_and_normalises(self) -> None:
        utm = parse_utm_params(
            "https://example.com/?utm_source=Google&utm_medium=CPC&utm_campaign=%20Spring%20"
        )
        assert utm == UTMParams(source="google", medium="cpc", campaign="spring")

    def test_blank_values_are_none(self) -> None:
        utm = parse_utm_params("https://example.com/?utm_source=&utm_medium=email")
        assert utm.source is None
        assert utm.medium == "email"

    def test_no_query(self) -> None:
        assert not parse_utm_params("https://example.com/").has_any()
        assert not parse_utm_params(None).has_any()


class TestParseDomain:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://www.google.com/search", ("google.com", "www")),
            ("https://news.bbc.co.uk/", ("bbc.co.uk", "news")),
            ("https://example.org", ("example.org", None)),
            ("http://localhost:3000/", ("localhost", None)),
            ("", (None, None)),
            ("not a url", (None, None)),
        ],
    )
    def test_parse(self, url: str, expected: tuple[str | None, str | None]) -> None:
        assert parse_domain(url) == expected


class TestParseReferrer:
    def test_search_engine(self) -> None:
        info = parse_referrer("https://www.google.co.uk/")
        assert info.search_engine == "google"

    def test_social_exact_domain(self) -> None:
        assert parse_referrer("https://t.co/abc").social_network == "twitter"
        assert parse_referrer("https://x.com/someone").social_network == "twitter"

    def test_lookalike_domains_do_not_match(self) -> None:
        assert parse_referrer("https://www.reddit.com/").social_network == "reddit"
        assert parse_referrer("https://dropbox.com/").social_network is None


class TestClassify:
    def test_medium_wins(self) -> None:
        source = classify_traffic_source(
            UTMParams(source="facebook", medium="cpc"), parse_referrer("https://facebook.com/")
        )
        assert source == TrafficSource.PAID_SEARCH

    def test_source_only(self) -> None:
        assert (
            classify_traffic_source(UTMParams(source="newsletter"), parse_referrer(None))
            == TrafficSource.EMAIL
        )

    def test_referral(self) -> None:
        assert (
            classify_traffic_source(UTMParams(), parse_referrer("https://blog.example.net/post"))
            == TrafficSource.REFERRAL
        )

    def test_direct(self) -> None:
        assert classify_traffic_source(UTMParams(), parse_referrer(None)) == TrafficSource.DIRECT


class TestChannelNames:
    @pytest.mark.parametrize(
        ("referrer", "expected"),
        [
            (None, DIRECT),
            ("", DIRECT),
            ("https://duckduckgo.com/", "Organic Search (Duckduckgo)"),
            ("https://www.linkedin.com/feed", "Social (Linkedin)"),
            ("https://blog.example.net/post", "Referral (example.net)"),
        ],
    )
    def test_channel_for_referrer(self, referrer: str | None, expected: str) -> None:
        assert channel_for_referrer(referrer) == expected

    def test_email_campaign(self) -> None:
        utm = UTMParams(source="mailchimp", medium="email", campaign="launch")
        assert get_channel_name(TrafficSource.EMAIL, utm, parse_referrer(None)) == "Email (launch)"
