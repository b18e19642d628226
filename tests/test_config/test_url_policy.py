"""Tests for candidate URL policy."""

from verifier.config.settings import TargetURLPolicyConfig
from verifier.config.url_policy import (
    is_homepage,
    is_search_page,
    normalize_domain,
    validate_candidate_url,
    validate_target_url,
)


def _policy(**kwargs):
    kwargs.setdefault("denied_domains", [])
    return TargetURLPolicyConfig(**kwargs)


class TestNormalizeDomain:
    def test_strips_www(self):
        assert normalize_domain("https://www.Kroger.com/p/item/123") == "kroger.com"

    def test_bare_host(self):
        assert normalize_domain("www.kroger.com") == "kroger.com"

    def test_www_and_bare_domains_compare_equal(self):
        assert normalize_domain("https://www.kroger.com/a") == normalize_domain(
            "https://kroger.com/b"
        )


class TestTargetPolicy:
    def test_https_allowed(self):
        assert validate_target_url("https://www.target.com/p/soup/-/A-1", _policy()).allowed

    def test_ftp_rejected(self):
        result = validate_target_url("ftp://example.com/file", _policy())
        assert not result.allowed
        assert "Scheme" in result.reason

    def test_localhost_rejected(self):
        assert not validate_target_url("http://localhost:8000/x", _policy()).allowed

    def test_private_ip_rejected(self):
        result = validate_target_url("http://192.168.1.10/product", _policy())
        assert not result.allowed
        assert "private range" in result.reason

    def test_public_ip_allowed(self):
        assert validate_target_url("http://8.8.8.8/product", _policy()).allowed

    def test_denied_subdomain_rejected(self):
        policy = _policy(denied_domains=["example.com"])
        assert not validate_target_url("https://shop.example.com/item", policy).allowed

    def test_missing_hostname_rejected(self):
        assert not validate_target_url("https:///path", _policy()).allowed


class TestCandidateShape:
    def test_search_listing_rejected(self):
        url = "https://www.amazon.com/s?k=campbells+tomato+soup"
        assert is_search_page(url)
        result = validate_candidate_url(url, _policy())
        assert not result.allowed
        assert result.reason == "Search or listing page"

    def test_walmart_search_rejected(self):
        assert not validate_candidate_url(
            "https://www.walmart.com/search?q=tomato+soup", _policy()
        ).allowed

    def test_homepage_rejected(self):
        assert is_homepage("https://www.target.com/")
        result = validate_candidate_url("https://www.target.com", _policy())
        assert result.reason == "Site homepage"

    def test_product_page_allowed(self):
        url = "https://www.walmart.com/ip/Campbell-s-Tomato-Soup-10-75-oz/10535130"
        assert validate_candidate_url(url, _policy()).allowed
