"""
Data synchronization endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.analytics import get_aggregator
from app.config import get_settings
from app.connectors.metrics import Platform
from app.services.aggregator import AnalyticsAggregator
from app.utils.helpers import calculate_date_range
from app.utils.logger import log

settings = get_settings()

router = APIRouter(prefix="/sync", tags=["sync"])


class SyncRequest(BaseModel):
    """Which integrations to sync; the first selector set wins"""
    sync_all: bool = False
    integration_id: Optional[int] = None
    client_id: Optional[str] = None
    platform: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@router.post("/integrations")
async def sync_integrations(
    body: SyncRequest,
    aggregator: AnalyticsAggregator = Depends(get_aggregator)
):
    """Sync a selection of integrations in batches"""
    log.info(f"Sync request received: {body.model_dump(exclude_none=True)}")
    return await aggregator.sync_integrations(
        sync_all=body.sync_all,
        integration_id=body.integration_id,
        client_id=body.client_id,
        platform=body.platform,
        start_date=body.start_date,
        end_date=body.end_date,
    )


@router.post("/client/{client_id}")
async def sync_client(
    client_id: str,
    days: int = Query(None, description="Trailing days to sync"),
    aggregator: AnalyticsAggregator = Depends(get_aggregator)
):
    """Refresh every connected platform for one client"""
    start_date, end_date = calculate_date_range(days or settings.default_date_range_days)
    return await aggregator.sync(client_id, start_date, end_date)


@router.get("/runs")
async def get_sync_runs(
    client_id: Optional[str] = Query(None, description="Restrict to one client"),
    limit: int = Query(20, ge=1, le=200),
    aggregator: AnalyticsAggregator = Depends(get_aggregator)
):
    """Recent sync runs, newest first"""
    runs = aggregator.ledger.recent(limit=limit, client_id=client_id)
    return {"total": len(runs), "runs": runs}


@router.get("/daily/{client_id}")
async def get_daily_metrics(
    client_id: str,
    platform: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    aggregator: AnalyticsAggregator = Depends(get_aggregator)
):
    """Per-day metrics stored by syncs"""
    if platform:
        platform = Platform.parse(platform).value
    rows = aggregator.daily_store.get_range(client_id, start_date, end_date, platform)
    return {"client_id": client_id, "total": len(rows), "days": rows}
