"""Utility helpers for the school locator service."""

from __future__ import annotations

import math
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

EARTH_RADIUS_KM = 6371.0


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "unset"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def mask_url_credentials(url: Optional[str]) -> str:
    """Hide the password part of a connection URL such as mongodb://user:pw@host."""
    if not url:
        return "unset"
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", f":{mask_secret(parts.password)}@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # rounding can push near-antipodal points just past 1.0
    if a > 1.0:
        a = 1.0
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
