"""Navigation shell endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from signal_dashboard.api.models import NavigationItem
from signal_dashboard.navigation import NAVIGATION

router = APIRouter(prefix="/api", tags=["navigation"])


@router.get("/navigation", response_model=list[NavigationItem])
async def list_navigation() -> list[NavigationItem]:
    """Sidebar entries; ``available`` is false for placeholder sections."""
    return [
        NavigationItem(
            name=entry.name,
            href=entry.href,
            icon=entry.icon,
            available=entry.available,
        )
        for entry in NAVIGATION
    ]
