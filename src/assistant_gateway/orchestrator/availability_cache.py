"""Time-bounded memo of provider reachability."""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityRecord:
    """Outcome of the last probe for one provider."""

    provider_id: str
    available: bool
    checked_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.checked_at < self.ttl


class AvailabilityCache:
    """Caches probe results: long TTL after success, short TTL after failure.

    Not locked. Two callers hitting a stale record at once may both probe,
    and the last write wins.
    """

    def __init__(
        self,
        success_ttl: float = 300.0,
        failure_ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl
        self._clock = clock
        self._records: Dict[str, AvailabilityRecord] = {}

    async def is_available(
        self, provider_id: str, probe: Callable[[], Awaitable[bool]]
    ) -> bool:
        record = self._records.get(provider_id)
        if record is not None and record.is_fresh(self._clock()):
            return record.available

        try:
            available = bool(await probe())
        except Exception as e:
            logger.debug(
                "Availability probe raised",
                extra={"provider": provider_id, "error_type": type(e).__name__},
            )
            available = False

        self._records[provider_id] = AvailabilityRecord(
            provider_id=provider_id,
            available=available,
            checked_at=self._clock(),
            ttl=self.success_ttl if available else self.failure_ttl,
        )
        return available

    def get(self, provider_id: str) -> Optional[AvailabilityRecord]:
        return self._records.get(provider_id)

    def invalidate(self, provider_id: Optional[str] = None) -> None:
        """Forget one provider, or every provider when no id is given."""
        if provider_id is None:
            self._records.clear()
        else:
            self._records.pop(provider_id, None)
