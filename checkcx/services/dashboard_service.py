from datetime import datetime, timezone
from typing import Dict, List, Optional

from checkcx.core.cache import redis_cache
from checkcx.core.config import settings
from checkcx.core.constants import (
    DEFAULT_TREND_PERIOD,
    PERIOD_INTERVALS,
    UNGROUPED_DISPLAY_NAME,
    UNGROUPED_KEY,
)
from checkcx.core.logging import get_logger
from checkcx.schemas.check import HistorySnapshot, ProviderConfig
from checkcx.schemas.dashboard import (
    DashboardData,
    GroupedProviderTimelines,
    GroupInfo,
    ProviderTimeline,
)
from checkcx.services.availability import AvailabilityAggregator
from checkcx.services.config_loader import ConfigLoader
from checkcx.services.snapshot_store import SnapshotStore


def normalize_period(period: Optional[str]) -> str:
    return period if period in PERIOD_INTERVALS else DEFAULT_TREND_PERIOD


def build_timelines(configs: List[ProviderConfig], history: HistorySnapshot) -> List[ProviderTimeline]:
    """One timeline per configured provider that has history, in config order"""
    timelines = []
    for config in configs:
        items = history.get(config.id)
        if not items:
            continue
        timelines.append(ProviderTimeline(id=config.id, items=items, latest=items[0]))
    return timelines


def group_timelines(timelines: List[ProviderTimeline],
                    group_infos: List[GroupInfo]) -> List[GroupedProviderTimelines]:
    """Bucket timelines by group name; named groups sorted, ungrouped last"""
    websites = {info.group_name: info.website_url for info in group_infos}
    buckets: Dict[str, List[ProviderTimeline]] = {}
    for timeline in timelines:
        key = timeline.latest.group_name or UNGROUPED_KEY
        buckets.setdefault(key, []).append(timeline)

    grouped = [
        GroupedProviderTimelines(
            group_name=name,
            display_name=name,
            timelines=buckets[name],
            website_url=websites.get(name),
        )
        for name in sorted(k for k in buckets if k != UNGROUPED_KEY)
    ]
    if UNGROUPED_KEY in buckets:
        grouped.append(GroupedProviderTimelines(
            group_name=UNGROUPED_KEY,
            display_name=UNGROUPED_DISPLAY_NAME,
            timelines=buckets[UNGROUPED_KEY],
        ))
    return grouped


class DashboardService:
    """
    Assembles the dashboard payload from history, trends and availability.

    Every source degrades to empty on its own, so a store outage shows up
    as gaps rather than an error.
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        aggregator: Optional[AvailabilityAggregator] = None,
        config_loader: Optional[ConfigLoader] = None,
    ):
        self.store = store or SnapshotStore()
        self.aggregator = aggregator or AvailabilityAggregator()
        self.config_loader = config_loader or ConfigLoader()
        self.logger = get_logger("dashboard_service")

    @redis_cache(ttl=settings.cache_ttl_dashboard, key_prefix="dashboard", model=DashboardData)
    async def load(self, trend_period: str = DEFAULT_TREND_PERIOD,
                   group_name: Optional[str] = None) -> Optional[DashboardData]:
        """
        Build the payload for all enabled providers, or for one group.

        Returns None when a group was requested and has no enabled providers.
        """
        period = normalize_period(trend_period)
        configs = await self.config_loader.load(enabled_only=True)

        if group_name is not None:
            configs = [c for c in configs if (c.group_name or UNGROUPED_KEY) == group_name]
            if not configs:
                return None

        ids = [config.id for config in configs]
        history = await self.store.fetch(ids)
        trend_data = await self.store.load_trend(period, ids)
        availability = await self.aggregator.get_stats(ids)

        if group_name is not None:
            info = await self.config_loader.get_group_info(group_name)
            group_infos = [info] if info else []
        else:
            group_infos = await self.config_loader.load_group_infos()

        timelines = build_timelines(configs, history)
        last_updated = max((t.latest.checked_at for t in timelines), default=None)

        self.logger.debug(
            "Dashboard payload built",
            providers=len(configs),
            timelines=len(timelines),
            trend_period=period,
            group_name=group_name
        )

        return DashboardData(
            provider_timelines=timelines,
            grouped_timelines=group_timelines(timelines, group_infos),
            last_updated=last_updated,
            total=len(timelines),
            poll_interval_ms=settings.check_poll_interval_seconds * 1000,
            availability_stats=availability,
            trend_data=trend_data,
            trend_period=period,
            generated_at=datetime.now(timezone.utc),
        )
