"""
Geo-IP Lookup

Resolves an IP address to an ISO country code. Lookups are optional
enrichment: any failure raises EnrichmentUnavailable and the caller
records the geographic check as skipped.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..errors import EnrichmentUnavailable
from ..utils import get_logger

logger = get_logger("enrichment.geo")


class GeoIPLookup(ABC):
    """Resolves IP addresses to countries."""

    @abstractmethod
    async def lookup_country(self, ip_address: str) -> Optional[str]:
        """
        Return the uppercase ISO country code for ``ip_address``.

        Raises:
            EnrichmentUnavailable: lookup failed or timed out
        """

    async def close(self) -> None:
        """Release resources. No-op by default."""


class HttpGeoIPLookup(GeoIPLookup):
    """
    Geo-IP over HTTP (ipapi.co-style JSON with a ``country_code`` field).
    """

    def __init__(
        self,
        url_template: str,
        timeout_seconds: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize lookup.

        Args:
            url_template: URL with an ``{ip}`` placeholder
            timeout_seconds: Per-request timeout
            client: Shared HTTP client (one is created if omitted)
        """
        self.url_template = url_template
        self.timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def lookup_country(self, ip_address: str) -> Optional[str]:
        url = self.url_template.format(ip=ip_address)
        try:
            response = await self.client.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geo-IP lookup failed for %s: %s", ip_address, e)
            raise EnrichmentUnavailable(f"Geo-IP lookup failed: {e}") from e

        if not isinstance(data, dict) or data.get("error"):
            reason = data.get("reason") if isinstance(data, dict) else "malformed response"
            logger.warning("Geo-IP lookup returned an error for %s: %s", ip_address, reason)
            raise EnrichmentUnavailable(f"Geo-IP lookup failed: {reason}")

        country = data.get("country_code")
        return str(country).upper() if country else None

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class StaticGeoIPLookup(GeoIPLookup):
    """Fixed IP -> country table, for local development."""

    def __init__(self, table: Optional[dict[str, str]] = None):
        self.table = {ip: code.upper() for ip, code in (table or {}).items()}

    async def lookup_country(self, ip_address: str) -> Optional[str]:
        return self.table.get(ip_address)
