from typing import Any, Dict
from fastapi import APIRouter

from checkcx.core.config import settings
from checkcx.services.poller import poller_manager


router = APIRouter(prefix="/poller", tags=["poller"])


@router.get("/status")
async def get_poller_status() -> Dict[str, Any]:
    """Current poller state for monitoring/debugging"""
    if not settings.poller_enabled:
        return {
            "enabled": False,
            "message": "Poller is disabled in configuration"
        }

    poller = poller_manager.get_poller()
    if not poller:
        return {
            "enabled": True,
            "status": "not_initialized",
            "message": "Poller is not yet initialized"
        }

    status_data = poller.get_status()
    return {
        "enabled": True,
        "status": "running" if status_data["is_running"] else "stopped",
        "details": status_data
    }
