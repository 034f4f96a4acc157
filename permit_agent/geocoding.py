"""Address validation and enrichment via Nominatim."""

from __future__ import annotations

import logging
from dataclasses import replace

import httpx

from . import config
from .models import Address
from .rate_limiter import RateLimiter, api_rate_limiter

logger = logging.getLogger(__name__)


def _clean_county(value: str | None) -> str | None:
    if not value:
        return None
    county = value.strip()
    for suffix in (" County", " Parish", " Borough"):
        if county.endswith(suffix):
            county = county[: -len(suffix)]
    return county or None


class Geocoder:
    """Looks up coordinates and county for a US address."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str = config.NOMINATIM_URL,
        user_agent: str = config.USER_AGENT,
        rate_limiter: RateLimiter = api_rate_limiter,
    ) -> None:
        self._client = client
        self._url = url
        self._user_agent = user_agent
        self._rate_limiter = rate_limiter

    async def geocode(self, address: Address) -> Address | None:
        """Return an enriched copy of *address*, or None if it cannot be located."""

        params = {
            "street": address.street,
            "city": address.city,
            "state": address.state,
            "postalcode": address.zip_code,
            "country": "us",
            "format": "json",
            "addressdetails": 1,
            "limit": 1,
        }
        try:
            await self._rate_limiter.wait_for_slot()
            response = await self._client.get(
                self._url,
                params=params,
                headers={"User-Agent": self._user_agent},
                timeout=httpx.Timeout(20.0, connect=5.0),
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Geocoding failed for %s: %s", address.one_line(), exc)
            return None

        if not data:
            logger.info("No geocoding match for %s", address.one_line())
            return None

        match = data[0]
        details = match.get("address") or {}
        try:
            latitude = float(match["lat"])
            longitude = float(match["lon"])
        except (KeyError, TypeError, ValueError):
            latitude = longitude = None

        return replace(
            address,
            city=details.get("city") or details.get("town") or details.get("village") or address.city,
            county=address.county or _clean_county(details.get("county")),
            zip_code=address.zip_code or details.get("postcode", ""),
            latitude=latitude,
            longitude=longitude,
        )
