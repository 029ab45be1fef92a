"""System information API endpoints."""

import logging

from fastapi import APIRouter

from harborwatch import __version__
from harborwatch.services.scheduler import scheduler_service
from harborwatch.services.settings_service import SettingsService
from harborwatch.services.snapshot_publisher import snapshot_publisher

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/info")
async def get_system_info():
    """Get collector status and effective configuration."""
    snapshot = snapshot_publisher.current()
    return {
        "version": __version__,
        "scheduler": scheduler_service.get_status(),
        "last_snapshot": {
            "tick": snapshot.tick,
            "collected_at": snapshot.collected_at,
            "containers": len(snapshot.containers),
            "running_containers": snapshot.system_info.running_containers,
        },
        "settings": SettingsService.get_all(),
    }
