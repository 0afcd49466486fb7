from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError
from supabase import AsyncClient

from checkcx.core.config import settings
from checkcx.core.constants import (
    MAX_POINTS_PER_PROVIDER,
    MIN_RETENTION_DAYS,
    MAX_RETENTION_DAYS,
    PERIOD_INTERVALS,
    RPC_HISTORY_BY_TIME,
    RPC_PRUNE_HISTORY,
    RPC_RECENT_HISTORY,
    TABLE_CHECK_HISTORY,
)
from checkcx.core.logging import CheckLogger, get_logger
from checkcx.db.supabase import get_supabase_admin
from checkcx.schemas.check import CheckResult, HistorySnapshot
from checkcx.schemas.dashboard import TrendDataMap, TrendDataPoint
from checkcx.services.downsampler import downsample


ClientFactory = Callable[[], Awaitable[AsyncClient]]

logger = get_logger("snapshot_store")

_FALLBACK_HISTORY_COLUMNS = """
    id,
    config_id,
    status,
    latency_ms,
    ping_latency_ms,
    checked_at,
    message,
    check_configs (
        id,
        name,
        type,
        model,
        endpoint,
        group_name
    )
"""


def normalize_allowed_ids(ids: Optional[Iterable[str]]) -> Optional[List[str]]:
    """None means no restriction; an explicit set is cleaned of blanks and may end up empty"""
    if ids is None:
        return None
    return [str(i) for i in ids if i]


def is_missing_function_error(error: BaseException, function_name: str) -> bool:
    """PostgREST names the function it could not find in the error text"""
    text = f"{getattr(error, 'message', '') or ''} {error}"
    return function_name in text


def clamp_retention_days(days: int) -> int:
    return max(MIN_RETENTION_DAYS, min(MAX_RETENTION_DAYS, int(days)))


def interval_days(since_interval: str) -> int:
    return int(since_interval.split(" ")[0])


def _group_newest_first(results: Iterable[CheckResult]) -> HistorySnapshot:
    history: Dict[str, List[CheckResult]] = defaultdict(list)
    for result in results:
        history[result.id].append(result)

    return {
        provider_id: sorted(items, key=lambda r: r.checked_at, reverse=True)[:MAX_POINTS_PER_PROVIDER]
        for provider_id, items in history.items()
    }


def _result_from_row(row: Dict[str, Any], config: Dict[str, Any], id_key: str) -> Optional[CheckResult]:
    """Build one history item; a row that does not validate is logged and dropped"""
    try:
        return CheckResult(
            id=str(config[id_key]),
            name=config.get("name") or "",
            type=config.get("type") or "",
            endpoint=config.get("endpoint") or "",
            model=config.get("model") or "",
            status=row["status"],
            latency_ms=row.get("latency_ms"),
            ping_latency_ms=row.get("ping_latency_ms"),
            checked_at=row["checked_at"],
            message=row.get("message") or "",
            group_name=config.get("group_name"),
        )
    except (ValidationError, KeyError, TypeError) as e:
        logger.warning("Skipping invalid history row", config_id=config.get(id_key), error=str(e))
        return None


def map_rows_to_snapshot(rows: Optional[Sequence[Dict[str, Any]]]) -> HistorySnapshot:
    """Rows from the batched RPC already carry the provider's metadata"""
    if not rows:
        return {}

    results = (_result_from_row(row, row, "config_id") for row in rows)
    return _group_newest_first(r for r in results if r is not None)


def _joined_config(record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    config = record.get("check_configs")
    if isinstance(config, list):
        config = config[0] if config else None
    return config or None


def map_joined_rows_to_snapshot(rows: Optional[Sequence[Dict[str, Any]]]) -> HistorySnapshot:
    """Rows from the fallback query embed the provider as check_configs; orphans are skipped"""
    results = []
    for record in rows or []:
        config = _joined_config(record)
        if config is None:
            continue
        result = _result_from_row(record, config, "id")
        if result is not None:
            results.append(result)
    return _group_newest_first(results)


def map_trend_rows(rows: Optional[Sequence[Dict[str, Any]]], limit: Optional[int] = None) -> TrendDataMap:
    if not rows:
        return {}

    grouped: Dict[str, List[TrendDataPoint]] = defaultdict(list)
    for row in rows:
        try:
            provider_id = str(row["config_id"])
            point = TrendDataPoint(
                timestamp=row["checked_at"],
                latency_ms=row.get("latency_ms"),
                status=row["status"],
            )
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning("Skipping invalid trend row", config_id=row.get("config_id"), error=str(e))
            continue
        grouped[provider_id].append(point)

    trend: TrendDataMap = {}
    for provider_id, points in grouped.items():
        points.sort(key=lambda p: p.timestamp)
        trend[provider_id] = downsample(points, limit) if limit else downsample(points)
    return trend


class SnapshotStore:
    """
    Read/write/prune access to check history in the telemetry store.

    Every operation tries one batched server-side function first. When the
    function is missing from the schema, a plain table query does the same
    work client-side, once. Any other failure is logged: reads come back
    empty and writes are dropped, so a poll cycle never fails on storage.
    """

    def __init__(self, client_factory: ClientFactory = get_supabase_admin, trend_limit: Optional[int] = None):
        self._client_factory = client_factory
        self.trend_limit = trend_limit
        self.logger = CheckLogger("snapshot_store")

    async def fetch(self, allowed_ids: Optional[Iterable[str]] = None) -> HistorySnapshot:
        """Up to MAX_POINTS_PER_PROVIDER newest results per provider, newest first"""
        normalized_ids = normalize_allowed_ids(allowed_ids)
        if normalized_ids is not None and not normalized_ids:
            return {}

        try:
            supabase = await self._client_factory()
            response = await supabase.rpc(RPC_RECENT_HISTORY, {
                "limit_per_config": MAX_POINTS_PER_PROVIDER,
                "target_config_ids": normalized_ids,
            }).execute()
            return map_rows_to_snapshot(response.data)
        except Exception as e:
            self.logger.store_failure("fetch", e)
            if is_missing_function_error(e, RPC_RECENT_HISTORY):
                self.logger.fallback_used("fetch", RPC_RECENT_HISTORY)
                return await self._fallback_fetch(normalized_ids)
            return {}

    async def _fallback_fetch(self, allowed_ids: Optional[List[str]]) -> HistorySnapshot:
        try:
            supabase = await self._client_factory()
            query = supabase.table(TABLE_CHECK_HISTORY).select(_FALLBACK_HISTORY_COLUMNS).order("checked_at", desc=True)
            if allowed_ids is not None:
                query = query.in_("config_id", allowed_ids)
            response = await query.execute()
            return map_joined_rows_to_snapshot(response.data)
        except Exception as e:
            self.logger.store_failure("fetch_fallback", e)
            return {}

    async def append(self, results: Sequence[CheckResult]) -> None:
        """Record results, then prune old history. Never raises."""
        if not results:
            return

        records = [
            {
                "config_id": result.id,
                "status": result.status.value,
                "latency_ms": result.latency_ms,
                "ping_latency_ms": result.ping_latency_ms,
                "checked_at": result.checked_at.isoformat(),
                "message": result.message,
            }
            for result in results
        ]

        try:
            supabase = await self._client_factory()
            await supabase.table(TABLE_CHECK_HISTORY).insert(records).execute()
        except Exception as e:
            self.logger.store_failure("append", e)
            return

        await self.prune()

    async def prune(self, retention_days: Optional[int] = None) -> None:
        """Delete history older than the retention window, clamped to [7, 365] days"""
        days = clamp_retention_days(
            retention_days if retention_days is not None else settings.history_retention_days
        )

        try:
            supabase = await self._client_factory()
            await supabase.rpc(RPC_PRUNE_HISTORY, {"retention_days": days}).execute()
        except Exception as e:
            self.logger.store_failure("prune", e)
            if is_missing_function_error(e, RPC_PRUNE_HISTORY):
                self.logger.fallback_used("prune", RPC_PRUNE_HISTORY)
                await self._fallback_prune(days)

    async def _fallback_prune(self, retention_days: int) -> None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        try:
            supabase = await self._client_factory()
            await supabase.table(TABLE_CHECK_HISTORY).delete().lt("checked_at", cutoff.isoformat()).execute()
        except Exception as e:
            self.logger.store_failure("prune_fallback", e)

    async def load_trend(self, period: str, allowed_ids: Optional[Iterable[str]] = None) -> TrendDataMap:
        """Per-provider (status, latency, time) series for a period, oldest first, downsampled"""
        normalized_ids = normalize_allowed_ids(allowed_ids)
        if normalized_ids is not None and not normalized_ids:
            return {}

        since_interval = PERIOD_INTERVALS.get(period, PERIOD_INTERVALS["7d"])
        try:
            supabase = await self._client_factory()
            response = await supabase.rpc(RPC_HISTORY_BY_TIME, {
                "since_interval": since_interval,
                "target_config_ids": normalized_ids,
            }).execute()
            return map_trend_rows(response.data, self.trend_limit)
        except Exception as e:
            self.logger.store_failure("load_trend", e)
            if is_missing_function_error(e, RPC_HISTORY_BY_TIME):
                self.logger.fallback_used("load_trend", RPC_HISTORY_BY_TIME)
                return await self._fallback_load_trend(normalized_ids, since_interval)
            return {}

    async def _fallback_load_trend(self, allowed_ids: Optional[List[str]], since_interval: str) -> TrendDataMap:
        try:
            cutoff = datetime.now(timezone.utc) - timedelta(days=interval_days(since_interval))
            supabase = await self._client_factory()
            query = (
                supabase.table(TABLE_CHECK_HISTORY)
                .select("config_id, status, latency_ms, checked_at")
                .gt("checked_at", cutoff.isoformat())
                .order("checked_at", desc=False)
            )
            if allowed_ids is not None:
                query = query.in_("config_id", allowed_ids)
            response = await query.execute()
            return map_trend_rows(response.data, self.trend_limit)
        except Exception as e:
            self.logger.store_failure("load_trend_fallback", e)
            return {}
