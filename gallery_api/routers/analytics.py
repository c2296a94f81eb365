"""
Site analytics summary for the management dashboard.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from gallery_api.dependencies.database import get_database
from gallery_api.services.analytics import AnalyticsClient, AnalyticsNotConfiguredError
from gallery_api.services.database import Database
from gallery_api.structures import Route

router = APIRouter(tags=["Analytics"])

_client = AnalyticsClient()


def get_analytics_client() -> AnalyticsClient:
    """Process wide client, so the access token is reused between requests."""
    return _client


@router.get("", summary="Analytics summary")
async def get_analytics(
    client: AnalyticsClient = Depends(get_analytics_client),
    db: Database = Depends(get_database),
) -> Dict[str, Any]:
    """
    Page views and visitors of the last 7 days, popular pages of the last 30
    days, trending pages of the last day, and the number of stored files.
    """
    try:
        summary = await client.summary()
    except AnalyticsNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics is not configured.",
        )
    summary["file_count"] = await db.get_file_count()
    return summary


route = Route(path="/analytics", router=router, position=2, middlewares=["auth"])
