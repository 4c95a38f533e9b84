"""
Reverse geocoding: device coordinates → human-readable address.

Calls a Nominatim-compatible ``/reverse`` endpoint (GEOCODER_URL). Any
failure (network error, non-2xx, unparseable body, no ``display_name``)
degrades to the raw coordinates formatted as ``"lat, lng"``.

Testability: pass a fake ``session`` instead of letting the function use
``requests`` directly.
"""

from __future__ import annotations

import logging

import requests
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/reverse"
DEFAULT_TIMEOUT = 10
DEFAULT_USER_AGENT = "commissioning-report/1.0"


def format_coordinates(lat: float, lng: float) -> str:
    return f"{lat:.6f}, {lng:.6f}"


def _setting(name: str, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


def reverse_geocode(
    lat: float,
    lng: float,
    session: requests.Session | None = None,
    *,
    url: str | None = None,
    timeout: float | None = None,
) -> str:
    """Return the address at (*lat*, *lng*), or the coordinates on any failure."""
    url = url or _setting("GEOCODER_URL", DEFAULT_GEOCODER_URL)
    timeout = timeout or _setting("GEOCODER_TIMEOUT", DEFAULT_TIMEOUT)
    headers = {
        "User-Agent": _setting("GEOCODER_USER_AGENT", DEFAULT_USER_AGENT),
        "Accept": "application/json",
    }
    params = {"lat": lat, "lon": lng, "format": "json"}
    http = session or requests

    try:
        resp = http.get(url, params=params, headers=headers, timeout=timeout)
        resp.raise_for_status()
        body = resp.json()
    except requests.RequestException as exc:
        logger.warning("Reverse geocoding failed for %.6f,%.6f: %s", lat, lng, exc)
        return format_coordinates(lat, lng)
    except ValueError:
        logger.warning("Reverse geocoding returned a non-JSON body for %.6f,%.6f", lat, lng)
        return format_coordinates(lat, lng)

    address = body.get("display_name") if isinstance(body, dict) else None
    if not address:
        logger.info("No address found for %.6f,%.6f", lat, lng)
        return format_coordinates(lat, lng)
    return address
