from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from caddate.client.providers import Position
from caddate.core.errors import (
    AuthError,
    CaddateError,
    NotFoundError,
    ThrottledError,
    TransientIOError,
    ValidationError,
)
from caddate.core.location_config import HTTP_TIMEOUT_SECONDS

DEFAULT_USER_AGENT = "caddate-client/1.0.0"


def _detail(resp: httpx.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {"message": resp.text}
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict):
        return detail
    return {"message": str(detail if detail is not None else data)}


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return

    detail = _detail(resp)
    message = str(detail.get("message") or f"HTTP {resp.status_code}")

    if resp.status_code == 400:
        raise ValidationError(str(detail.get("field") or "request"), str(detail.get("reason") or message))
    if resp.status_code == 401:
        raise AuthError(message)
    if resp.status_code == 404:
        raise NotFoundError(message)
    if resp.status_code == 429:
        raise ThrottledError(message)
    if resp.status_code >= 500:
        raise TransientIOError(f"Server error {resp.status_code}: {message}")
    raise CaddateError(f"HTTP {resp.status_code}: {message}")


class CaddateApiClient:
    """REST side of the location contract."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "User-Agent": DEFAULT_USER_AGENT,
                "Accept": "application/json",
            },
        )

    async def __aenter__(self) -> "CaddateApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientIOError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientIOError(f"{method} {path} failed: {e}") from e

        _raise_for_status(resp)
        return resp.json()

    # ---------------------------
    # Location
    # ---------------------------

    async def update_location(self, position: Position, is_sharing: bool = True) -> Dict[str, Any]:
        body = position.as_payload()
        body["is_sharing"] = is_sharing
        data = await self._request("POST", "/v1/location", json=body)
        logger.debug(f"Location persisted | lat={position.latitude} lng={position.longitude}")
        return data

    async def nearby(self, radius: Optional[float] = None, limit: Optional[int] = None) -> Dict[str, Any]:
        params = {k: v for k, v in (("radius", radius), ("limit", limit)) if v is not None}
        return await self._request("GET", "/v1/location/nearby", params=params)

    async def history(self, days: int = 7) -> Dict[str, Any]:
        return await self._request("GET", "/v1/location/history", params={"days": days})

    async def stop_sharing(self) -> Dict[str, Any]:
        return await self._request("POST", "/v1/location/stop")

    async def get_settings(self) -> Dict[str, Any]:
        return await self._request("GET", "/v1/location/settings")

    async def update_settings(
        self,
        is_sharing: Optional[bool] = None,
        privacy: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if is_sharing is not None:
            body["is_sharing"] = is_sharing
        if privacy is not None:
            body["privacy"] = privacy
        return await self._request("PUT", "/v1/location/settings", json=body)
