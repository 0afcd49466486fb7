from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional
from datetime import datetime

from checkcx.schemas.check import CheckResult, HealthStatus


AvailabilityPeriod = Literal["7d", "15d", "30d"]


class TrendDataPoint(BaseModel):
    """Single point of a provider's latency/status trend"""
    timestamp: datetime
    latency_ms: Optional[int] = None
    status: HealthStatus


class AvailabilityStat(BaseModel):
    """Availability summary for one provider over one period"""
    period: AvailabilityPeriod
    total_checks: int = Field(0, description="Checks recorded in the period")
    operational_count: int = Field(0, description="Checks that were operational")
    availability_pct: Optional[float] = Field(None, description="Operational share in percent")


TrendDataMap = Dict[str, List[TrendDataPoint]]
AvailabilityStatsMap = Dict[str, List[AvailabilityStat]]


class GroupInfo(BaseModel):
    id: str
    group_name: str
    website_url: Optional[str] = None


class ProviderTimeline(BaseModel):
    id: str
    items: List[CheckResult] = Field(default_factory=list, description="Newest first")
    latest: CheckResult


class GroupedProviderTimelines(BaseModel):
    group_name: str = Field(..., description="Group key, __ungrouped__ when none")
    display_name: str
    timelines: List[ProviderTimeline] = Field(default_factory=list)
    website_url: Optional[str] = None


class DashboardData(BaseModel):
    """Complete dashboard payload"""
    provider_timelines: List[ProviderTimeline] = Field(default_factory=list)
    grouped_timelines: List[GroupedProviderTimelines] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
    total: int = 0
    poll_interval_ms: int
    availability_stats: AvailabilityStatsMap = Field(default_factory=dict)
    trend_data: TrendDataMap = Field(default_factory=dict)
    trend_period: AvailabilityPeriod = "7d"
    generated_at: datetime = Field(..., description="When this payload was generated")
