# Dashboard summary counters and the notification feed.
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from .. import schemas
from ..console import Console, get_console, require_session
from ..screens import quick_actions_for

router = APIRouter()


def _count(summary: Dict[str, Any], key: str) -> int:
    try:
        return int(summary.get(key) or 0)
    except (TypeError, ValueError):
        return 0


@router.get("/dashboard", response_model=schemas.DashboardRead)
async def dashboard(console: Console = Depends(require_session)) -> schemas.DashboardRead:
    summary = await console.cache.get("dashboard") or {}
    try:
        revenue = float(summary.get("totalRevenue") or 0)
    except (TypeError, ValueError):
        revenue = 0.0
    return schemas.DashboardRead(
        total_users=_count(summary, "totalUsers"),
        total_apartments=_count(summary, "totalApartments"),
        total_bookings=_count(summary, "totalBookings"),
        total_revenue=revenue,
        quick_actions=quick_actions_for(console.session.role),
    )


@router.get("/notifications")
def notifications(console: Console = Depends(get_console)) -> List[Dict[str, str]]:
    """Notifications raised since the last read, oldest first."""
    return console.notifier.drain()
