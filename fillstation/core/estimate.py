# estimate.py — predicted fill duration with a local fallback
from __future__ import annotations

import math

from fillstation.core.logger import APP_LOGGER
from fillstation.core.models import StationSet
from fillstation.drivers.authority import RemoteAuthority

# Seconds per litre; rough flow rates, not calibrated constants
DUAL_S_PER_L = 0.46
SINGLE_S_PER_L = 0.9


def fallback_duration_s(stations: StationSet, capacity_l: float) -> int:
    rate = DUAL_S_PER_L if stations.is_dual else SINGLE_S_PER_L
    return int(math.ceil(capacity_l * rate))


async def estimate_duration(
    authority: RemoteAuthority,
    actor_id: str,
    stations: StationSet,
    capacity_l: float,
) -> int:
    """Ask the authority for the fill time, falling back to the local formula."""
    try:
        estimated = await authority.estimate_duration(actor_id, stations, capacity_l)
        estimated = int(estimated)
        if estimated <= 0:
            raise ValueError(f"non-positive estimate {estimated}")
        return estimated
    except Exception as e:
        fallback = fallback_duration_s(stations, capacity_l)
        APP_LOGGER.warning(f"Failed to fetch estimated time, using fallback {fallback}s: {e}")
        return fallback
