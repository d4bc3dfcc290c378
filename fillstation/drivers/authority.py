"""Common interface and exception for the remote filling authority."""
from __future__ import annotations

from typing import Optional

from fillstation.core.models import InProgressSession, OccupancySnapshot, Station, StationSet


class RemoteAuthorityError(RuntimeError):
    """Raised when a call to the remote authority fails or is rejected.

    ``status`` carries the HTTP status code when the server answered, and is
    ``None`` for transport failures (timeouts, refused connections).
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteAuthority:
    """Abstract interface for the backend that owns the pumps.

    Concrete backends (HTTP, test fakes) inherit from this class. Every method
    is a coroutine and raises RemoteAuthorityError on failure.
    """

    async def get_occupancy(self) -> OccupancySnapshot:  # pragma: no cover - interface placeholder
        raise NotImplementedError

    async def get_in_progress_session(self, actor_id: str) -> Optional[InProgressSession]:  # pragma: no cover
        raise NotImplementedError

    async def start_station(self, station: Station) -> None:  # pragma: no cover - interface placeholder
        raise NotImplementedError

    async def stop_station(self, station: Station) -> None:  # pragma: no cover - interface placeholder
        raise NotImplementedError

    async def estimate_duration(self, actor_id: str, stations: StationSet, capacity_l: float) -> int:  # pragma: no cover
        raise NotImplementedError

    async def get_session_amount(self, actor_id: str) -> Optional[float]:  # pragma: no cover
        raise NotImplementedError

    async def record_session(self, actor_id: str, amount: float, stations: StationSet) -> Optional[str]:  # pragma: no cover
        raise NotImplementedError

    async def record_stop(self, actor_id: str, remote_session_id: str) -> None:  # pragma: no cover
        raise NotImplementedError

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
        return None
