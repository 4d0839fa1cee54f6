"""Destination URL acceptance policy.

Destinations must be absolute ``http``/``https`` URLs no longer than the
configured maximum, and must not point at loopback or private networks so the
redirector cannot be pointed at internal hosts.

Check Order
===========
::
    empty? ─► too long? ─► scheme? ─► host present? ─► blocked host? ─► syntax?
      │          │            │            │                │              │
      ▼          ▼            ▼            ▼                ▼              ▼
    error      error        error        error            error          error

Key Behaviours
===============
- The first failing rule determines the error message.
- ``localhost``, loopback and unspecified addresses are blocked.
- ``10.0.0.0/8``, ``172.16.0.0/12`` and ``192.168.0.0/16`` are blocked.
- Final syntax check uses the ``validators`` library.
"""

import ipaddress
from urllib.parse import urlsplit

import validators

from shortlink.exceptions import ValidationError

__all__ = ["DEFAULT_MAX_URL_LENGTH", "destination_error", "validate_destination"]

DEFAULT_MAX_URL_LENGTH = 2048
ALLOWED_SCHEMES = ("http", "https")
BLOCKED_HOSTS = frozenset({"localhost", "localhost.localdomain"})
PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)


def _host_error(host: str) -> str | None:
    if host in BLOCKED_HOSTS:
        return "Localhost and loopback addresses are not allowed"

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return None

    # ::ffff:a.b.c.d reaches the same IPv4 host
    if address.version == 6 and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    if address.is_loopback or address.is_unspecified:
        return "Localhost and loopback addresses are not allowed"
    if address.version == 4 and any(address in network for network in PRIVATE_NETWORKS):
        return "Private IP addresses are not allowed"
    return None


def destination_error(url: str | None, max_length: int = DEFAULT_MAX_URL_LENGTH) -> str | None:
    """Return the reason ``url`` is not an acceptable destination, or None."""
    if url is None or not url.strip():
        return "URL cannot be empty"

    if len(url) > max_length:
        return f"URL exceeds maximum length of {max_length} characters"

    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError as exc:
        return f"Malformed URL: {exc}"

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return "Only HTTP and HTTPS protocols are allowed"

    if not host:
        return "Invalid URL format. Must start with http:// or https://"

    host_error = _host_error(host.lower())
    if host_error:
        return host_error

    if not validators.url(url):
        return "Invalid URL provided"

    return None


def validate_destination(url: str, max_length: int = DEFAULT_MAX_URL_LENGTH) -> str:
    """Return ``url`` unchanged when acceptable.

    Raises:
        ValidationError: With the reason the destination was refused.
    """
    error = destination_error(url, max_length=max_length)
    if error:
        raise ValidationError(error)
    return url
