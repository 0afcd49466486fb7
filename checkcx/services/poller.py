import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI

from checkcx.core.config import settings
from checkcx.core.logging import CheckLogger, setup_logging, get_logger
from checkcx.db.redis import cache, close_redis
from checkcx.schemas.check import CheckResult, HealthStatus, ProviderConfig
from checkcx.services.config_loader import ConfigLoader
from checkcx.services.ping import PingProber
from checkcx.services.probes import ProbeRegistry, build_default_registry
from checkcx.services.snapshot_store import SnapshotStore


class HealthCheckPoller:
    """
    Periodic check runner.

    Each cycle reloads provider configs, runs every provider's check
    concurrently and appends the results to history. A slow provider only
    delays its own result, never another provider's check.
    """

    def __init__(
        self,
        registry: ProbeRegistry,
        store: SnapshotStore,
        config_loader: ConfigLoader,
        interval_seconds: Optional[int] = None,
    ):
        self.registry = registry
        self.store = store
        self.config_loader = config_loader
        self.interval_seconds = interval_seconds or settings.check_poll_interval_seconds
        self.logger = CheckLogger("poller")

        self.is_running: bool = False
        self.poll_task: Optional[asyncio.Task] = None
        self.last_cycle_at: Optional[float] = None
        self.last_results: List[CheckResult] = []

    async def start(self) -> None:
        if self.is_running:
            self.logger.logger.warning("Poller already running")
            return

        self.is_running = True
        self.poll_task = asyncio.create_task(self._poll_loop())
        self.logger.logger.info("Poller started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        self.is_running = False

        if self.poll_task and not self.poll_task.done():
            self.poll_task.cancel()
            try:
                await self.poll_task
            except asyncio.CancelledError:
                pass

        self.logger.logger.info("Poller stopped")

    async def _poll_loop(self) -> None:
        while self.is_running:
            try:
                await self.run_cycle()
            except Exception as e:
                self.logger.error("Error in poll loop", error=str(e))

            await asyncio.sleep(self.interval_seconds)

    async def run_cycle(self) -> List[CheckResult]:
        start_time = time.monotonic()

        configs = await self.config_loader.load(enabled_only=True)
        if not configs:
            self.logger.logger.info("No enabled providers to check")
            return []

        results = list(await asyncio.gather(*(self._safe_check(config) for config in configs)))
        await self.store.append(results)
        await cache.delete_pattern("dashboard:*")

        self.last_cycle_at = time.time()
        self.last_results = results
        self.logger.cycle_completed(
            provider_count=len(results),
            operational=sum(1 for r in results if r.status == HealthStatus.OPERATIONAL),
            duration_ms=int((time.monotonic() - start_time) * 1000)
        )
        return results

    async def _safe_check(self, config: ProviderConfig) -> CheckResult:
        try:
            return await self.registry.run_check(config)
        except Exception as e:
            self.logger.check_failed(config.id, str(e))
            return CheckResult(
                id=config.id,
                name=config.name,
                type=config.type,
                endpoint=config.endpoint or "",
                model=config.model,
                status=HealthStatus.ERROR,
                message=str(e) or "unknown error",
                group_name=config.group_name,
            )

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "last_cycle_at": self.last_cycle_at,
            "last_result_count": len(self.last_results),
            "supported_types": self.registry.supported_types(),
        }


class PollerManager:
    """Owns the process-wide poller and its shared services"""

    def __init__(self):
        self.poller: Optional[HealthCheckPoller] = None
        self.pinger: Optional[PingProber] = None
        self.logger = get_logger("poller_manager")

    async def initialize(self) -> None:
        if not settings.poller_enabled:
            self.logger.info("Poller disabled in configuration")
            return

        self.pinger = PingProber()
        self.poller = HealthCheckPoller(
            registry=build_default_registry(self.pinger),
            store=SnapshotStore(),
            config_loader=ConfigLoader(),
        )
        await self.poller.start()
        self.logger.info("Poller manager initialized successfully")

    async def shutdown(self) -> None:
        if self.poller:
            await self.poller.stop()
        if self.pinger:
            await self.pinger.close()
        self.logger.info("Poller shutdown completed")

    def get_poller(self) -> Optional[HealthCheckPoller]:
        return self.poller


poller_manager = PollerManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger = get_logger("app_lifespan")

    logger.info("Application starting up...")
    try:
        await poller_manager.initialize()
    except Exception as e:
        logger.error("Application startup failed", error=str(e))
        raise

    yield

    logger.info("Application shutting down...")
    try:
        await poller_manager.shutdown()
        await close_redis()
    except Exception as e:
        logger.error("Application shutdown failed", error=str(e))
