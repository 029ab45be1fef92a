"""Snapshot API endpoint."""

from fastapi import APIRouter

from harborwatch.services.snapshot_publisher import snapshot_publisher

router = APIRouter()


@router.get("/snapshot")
async def get_snapshot():
    """Return the most recently published snapshot.

    Same document the stream pushes, for clients that poll instead.
    """
    return snapshot_publisher.current().to_wire()
