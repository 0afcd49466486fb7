import time
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from checkcx.core.config import settings
from checkcx.core.constants import VIEW_AVAILABILITY_STATS
from checkcx.core.logging import CheckLogger, get_logger
from checkcx.db.supabase import get_supabase_admin
from checkcx.schemas.dashboard import AvailabilityStat, AvailabilityStatsMap
from checkcx.services.snapshot_store import ClientFactory, normalize_allowed_ids


logger = get_logger("availability")


def map_availability_rows(rows: Optional[Sequence[Dict[str, Any]]]) -> AvailabilityStatsMap:
    if not rows:
        return {}

    mapped: Dict[str, List[AvailabilityStat]] = defaultdict(list)
    for row in rows:
        pct = row.get("availability_pct")
        try:
            provider_id = str(row["config_id"])
            stat = AvailabilityStat(
                period=row["period"],
                total_checks=int(row.get("total_checks") or 0),
                operational_count=int(row.get("operational_count") or 0),
                availability_pct=None if pct is None else float(pct),
            )
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid availability row", config_id=row.get("config_id"), error=str(e))
            continue
        mapped[provider_id].append(stat)
    return dict(mapped)


def filter_stats(data: AvailabilityStatsMap, ids: Optional[List[str]]) -> AvailabilityStatsMap:
    if ids is None:
        return dict(data)
    return {i: data[i] for i in ids if i in data}


class AvailabilityAggregator:
    """
    Availability percentages per provider and period, cached for one polling interval.

    Holds a single entry with the unfiltered map and its fetch time. Readers
    may race a refresh; the entry is replaced as one tuple, so they see
    either the old map or the new one.
    """

    def __init__(
        self,
        client_factory: ClientFactory = get_supabase_admin,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client_factory = client_factory
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.check_poll_interval_seconds
        self._clock = clock
        self._cache: tuple = ({}, None)
        self.logger = CheckLogger("availability")

    def invalidate(self) -> None:
        self._cache = ({}, None)

    async def get_stats(self, ids: Optional[Iterable[str]] = None) -> AvailabilityStatsMap:
        normalized_ids = normalize_allowed_ids(ids)
        if normalized_ids is not None and not normalized_ids:
            return {}

        data, fetched_at = self._cache
        now = self._clock()
        if data and fetched_at is not None and now - fetched_at < self.ttl_seconds:
            return filter_stats(data, normalized_ids)

        try:
            supabase = await self._client_factory()
            response = await supabase.table(VIEW_AVAILABILITY_STATS).select(
                "config_id, period, total_checks, operational_count, availability_pct"
            ).execute()
            mapped = map_availability_rows(response.data)
        except Exception as e:
            self.logger.store_failure("availability_stats", e)
            return {}

        self._cache = (mapped, now)
        return filter_stats(mapped, normalized_ids)
