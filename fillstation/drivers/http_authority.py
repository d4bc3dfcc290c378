# http_authority.py — aiohttp client for the pump/party REST backend
from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime
from typing import Any, Optional

import aiohttp

from fillstation.core.logger import APP_LOGGER
from fillstation.core.models import InProgressSession, OccupancySnapshot, Station, StationSet
from .authority import RemoteAuthority, RemoteAuthorityError

DEFAULT_TIMEOUT_S = 15.0
EMPTY_STATUSES = (204,)
EMPTY_OR_MISSING_STATUSES = (204, 404)
STATUS_ON = "ON"
# fromisoformat on 3.10 only takes 3 or 6 fractional digits
_FRACTION = re.compile(r"\.(\d+)")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse the backend's trip start time; naive values are local time."""
    if value in (None, ""):
        return None
    try:
        if isinstance(value, (int, float)):
            # Epoch milliseconds
            return datetime.fromtimestamp(float(value) / 1000.0).astimezone()
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.fromisoformat(text)
    except (TypeError, ValueError, OSError) as e:
        APP_LOGGER.warning(f"Unparseable session start time {value!r}: {e}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _actor_or_none(value: Any) -> Optional[str]:
    if value is None or value == "" or isinstance(value, (dict, list)):
        return None
    return str(value)


def parse_in_progress(data: Any) -> Optional[InProgressSession]:
    if not isinstance(data, dict) or not data:
        return None
    pump_used = data.get("pumpUsed") or ""
    try:
        station_set = StationSet.from_wire(pump_used)
    except ValueError:
        APP_LOGGER.warning(f"In-progress session with unknown pumpUsed {pump_used!r}")
        return None
    trip_id = data.get("tripId")
    return InProgressSession(
        remote_session_id=None if trip_id in (None, "", 0) else str(trip_id),
        actor_id=str(data.get("customerId", "")),
        station_set=station_set,
        started_at=_parse_timestamp(data.get("tripStartTime")),
        status=str(data.get("tripStatus") or "FILLING"),
        actor_name=data.get("customerName"),
    )


class HttpAuthority(RemoteAuthority):
    """
    REST backend for pumps and trips. One aiohttp session per authority;
    the caller closes it with ``close()``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = session is None

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        empty_statuses: tuple[int, ...] = (),
    ) -> Any:
        """Issue a request and decode JSON. Returns None for ``empty_statuses`` or an empty body."""
        url = f"{self.base_url}{endpoint}"
        try:
            async with self._client().request(method, url, params=params, headers=self._headers()) as resp:
                if resp.status in empty_statuses:
                    return None
                body = await resp.text()
                if resp.status >= 400:
                    message = f"HTTP error! status: {resp.status}"
                    try:
                        data = json.loads(body) if body else {}
                        if isinstance(data, dict) and data.get("message"):
                            message = str(data["message"])
                    except json.JSONDecodeError:
                        pass
                    raise RemoteAuthorityError(message, status=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            APP_LOGGER.error(f"API request failed: {endpoint}: {e!r}")
            raise RemoteAuthorityError(f"{method} {endpoint} failed: {e!r}") from e

        if not body or not body.strip():
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            if empty_statuses:
                APP_LOGGER.warning(f"Failed to parse JSON for {endpoint}, returning None")
                return None
            raise RemoteAuthorityError(f"Non-JSON response from {endpoint}")

    # --- occupancy ----------------------------------------------------
    async def get_filling_actor(self) -> Optional[str]:
        data = await self._request("GET", "/party/check-filling-status", empty_statuses=EMPTY_STATUSES)
        if isinstance(data, dict):
            data = data.get("customerId")
        return _actor_or_none(data)

    async def get_motor_status(self) -> tuple[bool, bool]:
        data = await self._request("GET", "/motor/status") or {}

        def _on(key: str) -> bool:
            entry = data.get(key) or {}
            return str(entry.get("status", "")).upper() == STATUS_ON

        return _on("pump_inside"), _on("pump_outside")

    async def get_occupancy(self) -> OccupancySnapshot:
        actor, (a_on, b_on) = await asyncio.gather(self.get_filling_actor(), self.get_motor_status())
        return OccupancySnapshot(active_actor_id=actor, station_a_on=a_on, station_b_on=b_on)

    async def get_in_progress_session(self, actor_id: str) -> Optional[InProgressSession]:
        data = await self._request(
            "GET", f"/party/in-progress-trip/{actor_id}", empty_statuses=EMPTY_OR_MISSING_STATUSES
        )
        return parse_in_progress(data)

    # --- stations -----------------------------------------------------
    async def start_station(self, station: Station) -> None:
        await self._request("POST", f"/motor/pump/{station.wire_name}/start")

    async def stop_station(self, station: Station) -> None:
        await self._request("POST", f"/motor/pump/{station.wire_name}/stop")

    # --- trips --------------------------------------------------------
    async def estimate_duration(self, actor_id: str, stations: StationSet, capacity_l: float) -> int:
        data = await self._request(
            "GET", f"/party/estimated-time/{actor_id}", params={"pumpUsed": stations.wire_name}
        )
        if not isinstance(data, dict) or data.get("estimatedTimeSeconds") is None:
            raise RemoteAuthorityError("Estimated time missing from response")
        return int(data["estimatedTimeSeconds"])

    async def get_session_amount(self, actor_id: str) -> Optional[float]:
        data = await self._request("GET", f"/party/trip-amount/{actor_id}")
        if data is None:
            return None
        return float(data)

    async def record_session(self, actor_id: str, amount: float, stations: StationSet) -> Optional[str]:
        data = await self._request(
            "POST",
            "/party/record-trip",
            params={"customerId": str(actor_id), "tripAmount": str(amount), "pumpUsed": stations.wire_name},
        )
        if isinstance(data, dict) and data.get("purchaseId") is not None:
            return str(data["purchaseId"])
        return None

    async def record_stop(self, actor_id: str, remote_session_id: str) -> None:
        await self._request(
            "PUT",
            "/party/update-trip-time",
            params={"customerId": str(actor_id), "tripId": str(remote_session_id)},
        )
