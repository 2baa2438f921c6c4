"""Destination URL validation and canonicalization.

``normalize_url`` is applied once, at creation time; resolution serves the
stored string untouched.

Normalization Steps
===================
::
    raw input
      │ strip whitespace ─────────── empty? → EmptyUrl
      │ no "scheme://"? prefix https://
      │ split (urllib.parse) ─────── no host? → InvalidUrl
      │ scheme in {http, https}? ─── no → UnsupportedScheme
      │ numeric IPv4 shorthand? ──── rewrite as dotted quad
      │ strict mode: localhost / private IP? → PrivateAddressRejected
      │ hostname length >= 3? ────── no → InvalidDomain
      ▼
    lower-case scheme + host, "/" for an empty path,
    userinfo / port / query / fragment untouched

The output is a fixed point: normalizing it again returns it unchanged.
"""

import ipaddress
import re
import socket
from urllib.parse import urlsplit, urlunsplit

from bitlytics.errors import (
    EmptyUrl,
    InvalidDomain,
    InvalidUrl,
    PrivateAddressRejected,
    UnsupportedScheme,
)

__all__ = ["ALLOWED_SCHEMES", "canonical_ipv4", "extract_domain", "is_private_host", "normalize_url"]

ALLOWED_SCHEMES = ("http", "https")
MIN_HOSTNAME_LENGTH = 3

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_FORBIDDEN_HOST_CHARS = re.compile(r"[\s<>\"{}|\\^`]")
# Shorthand IPv4: 127.1, 2130706433, 0x7f.0.0.1, 0177.0.0.1
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]*|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+)){0,3}\.?$")


def is_private_host(hostname: str) -> bool:
    """True for localhost and loopback, private or link-local IP literals."""
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local


def canonical_ipv4(hostname: str) -> str | None:
    """Dotted-quad form of a numeric IPv4 host, None if ``hostname`` is not one.

    Raises:
        InvalidUrl: Numeric host outside the IPv4 range.
    """
    if not _NUMERIC_HOST.match(hostname):
        return None
    try:
        packed = socket.inet_aton(hostname.rstrip("."))
    except OSError as exc:
        raise InvalidUrl() from exc
    return socket.inet_ntoa(packed)


def normalize_url(raw_url: str, *, reject_private: bool = False) -> str:
    """Validate ``raw_url`` and return its canonical form.

    Args:
        raw_url: User-supplied destination, with or without a scheme.
        reject_private: Refuse localhost and private-range hosts. Driven by
            the deployment environment, not by the caller's input.

    Returns:
        str: The normalized absolute URL.

    Raises:
        UrlValidationError: One of its subclasses, carrying the user-facing message.
    """
    trimmed = (raw_url or "").strip()
    if not trimmed:
        raise EmptyUrl()

    if not _SCHEME_PREFIX.match(trimmed):
        trimmed = f"https://{trimmed}"

    try:
        parts = urlsplit(trimmed)
        hostname = parts.hostname
        # Accessing .port validates it.
        parts.port
    except ValueError as exc:
        raise InvalidUrl() from exc

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise UnsupportedScheme()

    if not hostname or _FORBIDDEN_HOST_CHARS.search(hostname):
        raise InvalidUrl()

    userinfo, at, hostport = parts.netloc.rpartition("@")
    hostport = hostport.lower()
    ipv4 = canonical_ipv4(hostname)
    if ipv4 is not None and ipv4 != hostname:
        hostname = ipv4
        hostport = ipv4 if parts.port is None else f"{ipv4}:{parts.port}"

    if reject_private and is_private_host(hostname):
        raise PrivateAddressRejected()

    if len(hostname) < MIN_HOSTNAME_LENGTH:
        raise InvalidDomain()

    netloc = f"{userinfo}{at}{hostport}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def extract_domain(url: str) -> str:
    """Hostname of ``url`` for display, or ``url`` itself if it cannot be parsed."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return url
    return hostname or url
