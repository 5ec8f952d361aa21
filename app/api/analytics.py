"""
Analytics API endpoint
Single action-dispatched entry point for client analytics
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, ConfigDict, Field

from app import __version__
from app.config import get_settings
from app.services.aggregator import AnalyticsAggregator
from app.utils.errors import ValidationError
from app.utils.helpers import calculate_date_range, utcnow
from app.utils.logger import log

settings = get_settings()

router = APIRouter(tags=["analytics"])

ACTIONS = ("overview", "platform", "sync", "health")

_aggregator = None


def get_aggregator() -> AnalyticsAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = AnalyticsAggregator()
    return _aggregator


class AnalyticsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = None
    client_id: Optional[str] = Field(None, alias="clientId")
    platform: Optional[str] = None
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    force_refresh: bool = Field(False, alias="forceRefresh")


@router.post("/analytics-api")
async def analytics_api(
    body: AnalyticsRequest,
    request: Request,
    authorization: Optional[str] = Header(None),
    aggregator: AnalyticsAggregator = Depends(get_aggregator)
):
    """
    Dispatch on ``action``: overview, platform, sync or health.

    Health needs no credentials; every other action needs a bearer token.
    """
    if body.action == "health":
        return {
            "status": "healthy",
            "service": "analytics-api",
            "version": __version__,
            "timestamp": utcnow().isoformat(),
            "features": ["overview", "platform", "sync", "caching"],
        }

    await request.app.state.identity_client.authenticate(authorization)

    if not body.client_id:
        raise ValidationError("Client ID is required")

    default_start, default_end = calculate_date_range(settings.default_date_range_days)
    start_date = body.start_date or default_start
    end_date = body.end_date or default_end

    if body.action == "overview":
        log.info(f"Overview request for client {body.client_id}")
        overview = await aggregator.overview(body.client_id, start_date, end_date, body.force_refresh)
        return overview.to_dict()

    if body.action == "platform":
        if not body.platform:
            raise ValidationError("Platform is required")
        log.info(f"Platform request for {body.platform}, client {body.client_id}")
        return await aggregator.platform(body.client_id, body.platform, start_date, end_date, body.force_refresh)

    if body.action == "sync":
        log.info(f"Sync request for client {body.client_id}")
        return await aggregator.sync(body.client_id, start_date, end_date)

    raise ValidationError("Invalid action")
