import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from .config import settings
from .errors import INVALID_RESPONSE, SERVICE_UNAVAILABLE, TIMEOUT, MCPError

logger = structlog.get_logger(__name__)

PAGINATION_HEADERS = ("x-pagination-previous", "x-pagination-next")


@dataclass
class UpstreamResponse:
    status: int
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class CaptainDataClient:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.cd_api_base,
            timeout=settings.api_timeout_seconds,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        api_key: str,
        params: dict | None = None,
    ) -> UpstreamResponse:
        headers = {
            "X-API-Key": api_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method, path, headers=headers, params=params
                )
                break
            except httpx.TimeoutException as exc:
                logger.warning("captaindata_timeout", path=path)
                raise MCPError(
                    TIMEOUT, "Request to Captain Data API timed out", status=408
                ) from exc
            except httpx.TransportError as exc:
                if attempt >= settings.max_retries:
                    logger.warning(
                        "captaindata_unreachable", path=path, attempts=attempt + 1
                    )
                    raise MCPError(
                        SERVICE_UNAVAILABLE,
                        "Captain Data API is temporarily unavailable",
                        status=503,
                    ) from exc
                await asyncio.sleep(self._backoff(attempt))
                attempt += 1

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning(
                "captaindata_invalid_response", path=path, status=response.status_code
            )
            raise MCPError(
                INVALID_RESPONSE, "Invalid response from Captain Data API", status=500
            ) from exc

        relayed = {
            name: response.headers[name]
            for name in PAGINATION_HEADERS
            if name in response.headers
        }
        return UpstreamResponse(
            status=response.status_code, payload=payload, headers=relayed
        )

    async def validate_api_key(self, api_key: str) -> bool:
        response = await self._client.get(
            "/v4/workspaces",
            headers={"X-API-Key": api_key, "Content-Type": "application/json"},
        )
        return response.is_success

    def _backoff(self, attempt: int) -> float:
        return settings.retry_delay_seconds * (attempt + 1)

    async def close(self) -> None:
        await self._client.aclose()
