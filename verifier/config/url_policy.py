"""Candidate URL policy.

Every URL a search backend hands back is untrusted. Before it is fetched it
must pass the target policy (scheme, local hostnames, private IPs, denied
domains) and must look like a product page rather than a search listing or
a site homepage.
"""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from urllib.parse import urlparse

from verifier.config.settings import TargetURLPolicyConfig

PRIVATE_NETWORKS = [
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]

# Substrings that mark a retailer search or listing page.
SEARCH_PAGE_MARKERS = (
    "/s?",
    "/search?",
    "/search/",
    "/search.",
    "?q=",
    "&q=",
    "query=",
    "searchterm=",
    "keyword=",
    "?k=",
    "&k=",
)


@dataclass(frozen=True)
class URLValidationResult:
    allowed: bool
    reason: str


def normalize_domain(url_or_host: str) -> str:
    """Lower-cased hostname without a leading ``www.``.

    Accepts either a full URL or a bare hostname.
    """
    value = url_or_host.strip().lower()
    host = urlparse(value).hostname if "://" in value else value.split("/")[0]
    host = (host or "").rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def _is_private_ip(addr: ipaddress.IPv4Address | ipaddress.IPv6Address) -> str | None:
    """Return the matching private network string if addr is private, else None."""
    for network in PRIVATE_NETWORKS:
        if addr in network:
            return str(network)
    return None


def is_search_page(url: str) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in SEARCH_PAGE_MARKERS)


def is_homepage(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.path in ("", "/") and not parsed.query


def validate_target_url(url: str, policy: TargetURLPolicyConfig) -> URLValidationResult:
    """Validate a URL against the fetch policy.

    Checks:
    1. Scheme must be in allowed_schemes (default: http, https)
    2. Hostname must not be localhost or .local
    3. Hostname must not be a denied domain (or a subdomain of one)
    4. Literal IPs (and resolved IPs when resolve_dns is set) must not be private
    """
    parsed = urlparse(url)

    if parsed.scheme not in policy.allowed_schemes:
        return URLValidationResult(
            allowed=False,
            reason=f"Scheme '{parsed.scheme}' not allowed",
        )

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return URLValidationResult(allowed=False, reason="No hostname in URL")

    if policy.block_local_hostnames:
        if hostname == "localhost" or hostname.endswith(".local"):
            return URLValidationResult(
                allowed=False,
                reason=f"Hostname '{hostname}' is blocked",
            )

    domain = normalize_domain(hostname)
    for denied in policy.denied_domains:
        if domain == denied or domain.endswith(f".{denied}"):
            return URLValidationResult(
                allowed=False,
                reason=f"Domain '{domain}' is denied",
            )

    if policy.block_private_ips:
        try:
            addr = ipaddress.ip_address(hostname)
        except ValueError:
            addr = None

        if addr is not None:
            match = _is_private_ip(addr)
            if match:
                return URLValidationResult(
                    allowed=False,
                    reason=f"IP {addr} is in private range {match}",
                )
            return URLValidationResult(allowed=True, reason="OK")

        if policy.resolve_dns:
            try:
                infos = socket.getaddrinfo(hostname, None)
            except socket.gaierror:
                return URLValidationResult(
                    allowed=False,
                    reason=f"Cannot resolve hostname '{hostname}'",
                )
            for info in infos:
                resolved = ipaddress.ip_address(info[4][0])
                match = _is_private_ip(resolved)
                if match:
                    return URLValidationResult(
                        allowed=False,
                        reason=f"IP {resolved} is in private range {match}",
                    )

    return URLValidationResult(allowed=True, reason="OK")


def validate_candidate_url(url: str, policy: TargetURLPolicyConfig) -> URLValidationResult:
    """Target policy plus the product-page shape checks."""
    result = validate_target_url(url, policy)
    if not result.allowed:
        return result
    if is_search_page(url):
        return URLValidationResult(allowed=False, reason="Search or listing page")
    if is_homepage(url):
        return URLValidationResult(allowed=False, reason="Site homepage")
    return result
