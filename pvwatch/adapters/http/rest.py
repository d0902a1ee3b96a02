"""
REST Adapters - Telemetry history and weather from the storage/integration APIs.

Expected endpoints:
- GET {base_url}/systems/{system_id}/telemetry?start=..&end=..  -> [TelemetryRecord]
- GET {base_url}/systems/{system_id}/weather?start=..&end=..    -> [WeatherSample]
"""

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import PrivateAttr, TypeAdapter, ValidationError

from pvwatch.core.domain.telemetry import TelemetryRecord, WeatherSample
from pvwatch.core.errors import UpstreamFetchError
from pvwatch.core.ports.telemetry_store import TelemetryStore, WeatherProvider

logger = logging.getLogger(__name__)

_records = TypeAdapter(list[TelemetryRecord])
_samples = TypeAdapter(list[WeatherSample])


class _RestClient:
    """
    Lazy httpx client handling shared by the REST adapters.

    Expects `base_url`, `timeout`, `headers` and a `_client` private attribute
    on the model it is mixed into.
    """

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
            )
        return self._client

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        client = await self._get_client()
        url = f"{self.base_url.rstrip('/')}{path}"
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"GET {url} failed: {e}") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


class HttpTelemetryStore(_RestClient, TelemetryStore):
    """
    Telemetry history from the storage layer's REST API.
    Configured via Pydantic model fields.
    """
    base_url: str
    timeout: float = 30.0
    headers: dict[str, str] = {}

    _client: httpx.AsyncClient | None = PrivateAttr(default=None)

    async def history(self, system_id: str, start: datetime, end: datetime) -> list[TelemetryRecord]:
        data = await self._get_json(
            f"/systems/{system_id}/telemetry",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
        try:
            records = _records.validate_python(data)
        except ValidationError as e:
            raise UpstreamFetchError(f"Malformed telemetry for '{system_id}': {e}") from e

        logger.debug(f"Fetched {len(records)} records for '{system_id}'")
        return sorted(records, key=lambda r: r.timestamp)


class HttpWeatherProvider(_RestClient, WeatherProvider):
    """
    Weather observations and forecasts from the weather integration API.
    """
    base_url: str
    timeout: float = 30.0
    headers: dict[str, str] = {}

    _client: httpx.AsyncClient | None = PrivateAttr(default=None)

    async def samples(self, system_id: str, start: datetime, end: datetime) -> list[WeatherSample]:
        data = await self._get_json(
            f"/systems/{system_id}/weather",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
        try:
            return _samples.validate_python(data)
        except ValidationError as e:
            raise UpstreamFetchError(f"Malformed weather data for '{system_id}': {e}") from e
