"""Gatekeeping for scan targets: format, scheme and network-safety checks."""
from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import SplitResult, quote, urlsplit, urlunsplit

from errors import AccessibilityError, ErrorCode

MAX_URL_LENGTH = 2048

BLOCKED_HOSTNAMES = frozenset({
    "localhost",
    "localhost.localdomain",
    "0.0.0.0",
    "::1",
    "[::1]",
})

PRIVATE_NETWORKS: List[Union[ipaddress.IPv4Network, ipaddress.IPv6Network]] = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
]

LOCAL_SUFFIXES = (".local", ".localhost")
DEFAULT_PORTS = {"http": 80, "https": 443}

ERR_REQUIRED = "URL is required and must be a string"
ERR_EMPTY = "URL cannot be empty"
ERR_TOO_LONG = f"URL exceeds maximum length of {MAX_URL_LENGTH} characters"
ERR_FORMAT = "Invalid URL format"
ERR_PROTOCOL = "URL must use http or https protocol"
ERR_LOCALHOST = "Localhost and local addresses are not allowed"
ERR_PRIVATE_IP = "Private IP addresses are not allowed"
ERR_LOCAL_DOMAIN = "Local domain addresses are not allowed"

# Legacy IPv4 spellings browsers accept: 2130706433, 0x7f.1, 127.1 ...
_NUMERIC_HOST_RE = re.compile(r"^(0x[0-9a-f]*|\d+)(\.(0x[0-9a-f]*|\d+)){0,3}\.?$")
_FORBIDDEN_HOST_CHARS = set(" \t#%/:<>?@[\\]^|\"")

_PATH_SAFE = "/%!$&'()*+,;=:@~"
_QUERY_SAFE = "/%!$&'()*+,;=:@~?[]{}|\\^`"
_FRAGMENT_SAFE = "/%!$&'()*+,;=:@~?#[]{}|\\^"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    normalized_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True, "normalizedUrl": self.normalized_url}
        return {"valid": False, "error": self.error}


def _fail(error: str) -> ValidationResult:
    return ValidationResult(valid=False, error=error)


def _canonical_host(hostname: str) -> str:
    """Lower-case, IDNA-encode and normalize an IP-literal host. Raises ValueError."""
    host = hostname.lower()
    if ":" in host:
        return f"[{ipaddress.IPv6Address(host).compressed}]"
    if _NUMERIC_HOST_RE.match(host):
        try:
            return socket.inet_ntoa(socket.inet_aton(host.rstrip(".")))
        except OSError as exc:
            raise ValueError(f"bad IPv4 host {hostname!r}") from exc
    if not host or any(ch in _FORBIDDEN_HOST_CHARS for ch in host):
        raise ValueError(f"bad host {hostname!r}")
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError as exc:
        raise ValueError(f"bad host {hostname!r}") from exc


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")[1:]
    output: List[str] = []
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        if seg == "..":
            if output:
                output.pop()
            if last:
                output.append("")
        elif seg == ".":
            if last:
                output.append("")
        else:
            output.append(seg)
    return "/" + "/".join(output)


def _canonicalize(parts: SplitResult) -> str:
    scheme = parts.scheme.lower()
    host = _canonical_host(parts.hostname or "")
    port = parts.port  # raises ValueError when out of range
    userinfo, _, _ = parts.netloc.rpartition("@")

    netloc = host
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"
    if userinfo:
        netloc = f"{userinfo}@{netloc}"

    path = quote(parts.path or "/", safe=_PATH_SAFE)
    if not path.startswith("/"):
        path = "/" + path
    path = _remove_dot_segments(path)
    query = quote(parts.query, safe=_QUERY_SAFE)
    fragment = quote(parts.fragment, safe=_FRAGMENT_SAFE)
    return urlunsplit((scheme, netloc, path, query, fragment))


def _is_private_ip(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    mapped = getattr(ip, "ipv4_mapped", None)
    candidates = [ip] if mapped is None else [ip, mapped]
    for candidate in candidates:
        for network in PRIVATE_NETWORKS:
            if candidate.version == network.version and candidate in network:
                return True
    return False


def validate_url(value: object) -> ValidationResult:
    if not isinstance(value, str) or value == "":
        return _fail(ERR_REQUIRED)

    trimmed = value.strip()
    if not trimmed:
        return _fail(ERR_EMPTY)
    if len(trimmed) > MAX_URL_LENGTH:
        return _fail(ERR_TOO_LONG)

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return _fail(ERR_FORMAT)
    if not parts.scheme:
        return _fail(ERR_FORMAT)
    if parts.scheme.lower() not in ("http", "https"):
        return _fail(ERR_PROTOCOL)
    if not parts.hostname:
        return _fail(ERR_FORMAT)

    try:
        normalized = _canonicalize(parts)
    except ValueError:
        return _fail(ERR_FORMAT)

    host = urlsplit(normalized).hostname or ""
    if host in BLOCKED_HOSTNAMES or f"[{host}]" in BLOCKED_HOSTNAMES:
        return _fail(ERR_LOCALHOST)
    if _is_private_ip(host):
        return _fail(ERR_PRIVATE_IP)
    if host.endswith(LOCAL_SUFFIXES):
        return _fail(ERR_LOCAL_DOMAIN)

    return ValidationResult(valid=True, normalized_url=normalized)


def require_valid_url(value: object) -> str:
    """Return the normalized URL or raise ``AccessibilityError(INVALID_URL)``."""
    result = validate_url(value)
    if not result.valid:
        raise AccessibilityError(ErrorCode.INVALID_URL, result.error or ERR_FORMAT)
    return result.normalized_url
