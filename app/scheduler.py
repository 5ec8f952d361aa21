"""
Scheduler for health monitoring and analytics syncs

Uses APScheduler; the health cycle runs on a fixed interval independent of
any in-flight analytics request.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
import time

from app.config import get_settings
from app.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler(timezone="UTC")


# Job functions

async def run_health_monitor():
    """Poll every service and alert on sustained outages"""
    from app.api.monitoring import get_monitor

    try:
        result = await get_monitor().run_cycle()
        log.info(
            f"Health monitor cycle: {result['status']}, "
            f"{len(result['alerts_detected'])} detected, {result['alerts_sent']} sent"
        )
    except Exception as e:
        # Keep the interval job alive; the next tick starts a fresh cycle
        log.error(f"Health monitor cycle error: {str(e)}")


async def sync_all_integrations():
    """Refresh snapshots and daily rows for every connected integration"""
    from app.api.analytics import get_aggregator

    start = time.time()
    try:
        log.info("Starting scheduled sync of all integrations...")
        result = await get_aggregator().sync_integrations(sync_all=True)
        log.info(
            f"Scheduled sync completed ({result['status']}): {result['synced']} synced, "
            f"{result['failed']} failed, {result['rows_upserted']} daily rows in {time.time() - start:.1f}s"
        )
    except Exception as e:
        log.error(f"Scheduled sync error: {str(e)}")


def setup_scheduler():
    """
    Configure the scheduler.

    - Health monitor: every ``health_poll_interval_minutes``
    - Integration sync: ``sync_schedule_cron`` (UTC)
    """
    scheduler.add_job(
        run_health_monitor,
        trigger=IntervalTrigger(minutes=settings.health_poll_interval_minutes),
        id='health_monitor',
        name='Service Health Monitor',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    if settings.enable_scheduled_sync:
        scheduler.add_job(
            sync_all_integrations,
            trigger=CronTrigger.from_crontab(settings.sync_schedule_cron, timezone="UTC"),
            id='integrations_sync',
            name='Integrations Daily Sync',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

    log.info("Scheduler configured with health monitor and sync jobs")


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs

    Returns:
        List of job info dicts
    """
    jobs = []

    for job in scheduler.get_jobs():
        next_run = job.next_run_time

        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs
