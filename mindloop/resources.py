"""ResourceMonitor: memory pressure checks and reclamation."""

import gc
import logging
from typing import Any, Callable, Dict, Optional

import psutil

from mindloop.cache import ResponseCache

logger = logging.getLogger(__name__)


def system_memory_pressure() -> float:
    """Fraction of system memory in use (0.0-1.0)."""
    return psutil.virtual_memory().percent / 100.0


class ResourceMonitor:
    """Reports memory pressure and frees what it can on demand.

    Args:
        cache: Response cache purged of expired entries on reclaim.
        pressure_fn: Source of the pressure ratio. Defaults to system
            memory utilization via psutil.
    """

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        pressure_fn: Optional[Callable[[], float]] = None,
    ):
        self._cache = cache
        self._pressure_fn = pressure_fn or system_memory_pressure

    def pressure(self) -> float:
        try:
            return float(self._pressure_fn())
        except (psutil.Error, OSError) as e:
            logger.warning(f"Could not read memory pressure: {e}")
            return 0.0

    def process_memory(self) -> Dict[str, Any]:
        info = psutil.Process().memory_info()
        return {"rss_mb": round(info.rss / (1024 * 1024), 1), "pressure": self.pressure()}

    def force_reclaim(self) -> Dict[str, int]:
        """Run a full GC pass and drop expired cache entries."""
        collected = gc.collect()
        purged = self._cache.purge_expired() if self._cache is not None else 0
        logger.info(f"Reclaimed memory: {collected} objects collected, {purged} cache entries purged")
        return {"collected": collected, "cache_purged": purged}
