from functools import lru_cache

from checkcx.services.dashboard_service import DashboardService


@lru_cache(maxsize=1)
def get_dashboard_service() -> DashboardService:
    """Dependency injection for the dashboard service.

    One instance per process so the availability cache outlives a request.
    """
    return DashboardService()
