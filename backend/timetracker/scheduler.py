"""APScheduler integration for periodic Jira jobs."""

import logging
from typing import Callable, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from timetracker.config import settings
from timetracker.constants.ticket_system_type import TicketSystemType
from timetracker.database import SessionLocal
from timetracker.models.project import Project
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user_ticket_system import UserTicketSystem
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.services.subticket_sync import SubticketSyncService

log = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

WORKLOG_SYNC_JOB_ID = "jira_worklog_sync_job"
SUBTICKET_SYNC_JOB_ID = "jira_subticket_sync_job"

# Overlapping runs are skipped
_worklog_sync_running = False
_subticket_sync_running = False


async def scheduled_worklog_sync_job(
    session_factory: Callable[[], Session] = SessionLocal,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Dict[str, int]]:
    """Sync pending work logs of every user that authorized a time booking Jira system."""
    global _worklog_sync_running

    if _worklog_sync_running:
        log.warning("Scheduled work log sync skipped: previous run still active")
        return None

    _worklog_sync_running = True
    db = session_factory()
    factory = JiraServiceFactory(db, transport=transport)
    totals = {"pairs": 0, "processed": 0, "synced": 0, "failed": 0}

    try:
        pairs = db.query(UserTicketSystem).join(
            TicketSystem, UserTicketSystem.ticket_system_id == TicketSystem.id
        ).filter(
            UserTicketSystem.avoid_connection.is_(False),
            TicketSystem.type == TicketSystemType.JIRA.value,
            TicketSystem.book_time.is_(True),
        ).all()
        log.info(f"Starting scheduled work log sync for {len(pairs)} user/ticket system pairs")

        for pair in pairs:
            totals["pairs"] += 1
            try:
                services = factory.create(pair.user, pair.ticket_system)
                stats = await services.work_logs.update_entries_work_logs_limited(
                    pair.user, pair.ticket_system, limit=settings.jira_sync_entry_limit
                )
                for key in ("processed", "synced", "failed"):
                    totals[key] += stats[key]
            except Exception as e:
                log.error(
                    f"Scheduled work log sync failed for user {pair.user_id} "
                    f"on ticket system {pair.ticket_system_id}: {e}",
                    exc_info=True,
                )
                db.rollback()

        log.info(f"Scheduled work log sync completed: {totals}")
        return totals
    except Exception as e:
        log.error(f"Scheduled work log sync failed: {e}", exc_info=True)
        return totals
    finally:
        _worklog_sync_running = False
        await factory.aclose()
        db.close()


async def scheduled_subticket_sync_job(
    session_factory: Callable[[], Session] = SessionLocal,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Dict[str, int]]:
    """Refresh the subtickets of every project that has a ticket system."""
    global _subticket_sync_running

    if _subticket_sync_running:
        log.warning("Scheduled subticket sync skipped: previous run still active")
        return None

    _subticket_sync_running = True
    db = session_factory()
    factory = JiraServiceFactory(db, transport=transport)
    totals = {"projects": 0, "synced": 0, "failed": 0}

    try:
        service = SubticketSyncService(db, factory)
        projects = db.query(Project).filter(Project.ticket_system_id.isnot(None)).all()

        for project in projects:
            totals["projects"] += 1
            try:
                await service.sync_project_subtickets(project)
                totals["synced"] += 1
            except Exception as e:
                totals["failed"] += 1
                log.warning(f"Subticket sync failed for project {project.id} ({project.name}): {e}")
                db.rollback()

        log.info(f"Scheduled subticket sync completed: {totals}")
        return totals
    except Exception as e:
        log.error(f"Scheduled subticket sync failed: {e}", exc_info=True)
        return totals
    finally:
        _subticket_sync_running = False
        await factory.aclose()
        db.close()


def start_scheduler():
    """Register the jobs with a positive interval and start APScheduler."""
    if settings.jira_sync_interval_minutes > 0:
        scheduler.add_job(
            scheduled_worklog_sync_job,
            trigger=IntervalTrigger(minutes=settings.jira_sync_interval_minutes),
            id=WORKLOG_SYNC_JOB_ID,
            replace_existing=True,
        )
        log.info(f"Work log sync scheduled every {settings.jira_sync_interval_minutes} minutes")
    else:
        log.info("Scheduled work log sync disabled")

    if settings.subticket_sync_interval_hours > 0:
        scheduler.add_job(
            scheduled_subticket_sync_job,
            trigger=IntervalTrigger(hours=settings.subticket_sync_interval_hours),
            id=SUBTICKET_SYNC_JOB_ID,
            replace_existing=True,
        )
        log.info(f"Subticket sync scheduled every {settings.subticket_sync_interval_hours} hours")
    else:
        log.info("Scheduled subticket sync disabled")

    if not scheduler.running:
        scheduler.start()
        log.info("APScheduler started successfully")


def shutdown_scheduler():
    """Shutdown the APScheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        log.info("APScheduler shut down successfully")
