import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from timetracker.config import settings
from timetracker.connectors.errors import JiraApiError, JiraApiInvalidResourceError
from timetracker.connectors.jira_http_client import JiraHttpClientService
from timetracker.models.entry import Entry
from timetracker.models.project import Project
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User
from timetracker.schemas.jira import JiraWorkLog
from timetracker.services.jira_authentication import JiraAuthenticationService
from timetracker.services.jira_ticket import JiraTicketService
from timetracker.utils.keyed_lock import worklog_sync_lock

log = logging.getLogger(__name__)


def _has_ticket(entry: Entry) -> bool:
    return entry.ticket not in (None, "", "0")


class JiraWorkLogService:
    """
    Keeps the Jira work log of an entry in line with the entry itself:
    creates, updates and deletes the remote work log and records its id
    on the entry.
    """

    def __init__(
        self,
        db: Session,
        http_client: JiraHttpClientService,
        ticket_service: JiraTicketService,
        auth_service: JiraAuthenticationService,
    ):
        self.db = db
        self.http_client = http_client
        self.ticket_service = ticket_service
        self.auth_service = auth_service

    async def update_all_entries_work_logs(self, user: User, ticket_system: TicketSystem) -> Dict[str, int]:
        return await self.update_entries_work_logs_limited(user, ticket_system)

    async def update_entries_work_logs_limited(
        self,
        user: User,
        ticket_system: TicketSystem,
        limit: Optional[int] = None,
    ) -> Dict[str, int]:
        """
        Syncs the user's unsynced entries booked on this ticket system, most
        recent first. A failing entry is logged and skipped; every entry is
        committed on its own.
        """
        stats = {"processed": 0, "synced": 0, "failed": 0}

        if not self.auth_service.check_user_ticket_system(user, ticket_system):
            log.debug(f"User {user.id} has not authorized ticket system {ticket_system.id}, skipping work log sync")
            return stats

        async with worklog_sync_lock.acquire((user.id, ticket_system.id)):
            entries = self._find_entries_to_sync(user, ticket_system, limit)
            log.info(f"Syncing {len(entries)} work logs of user {user.id} to ticket system {ticket_system.id}")

            for entry in entries:
                stats["processed"] += 1
                try:
                    await self.update_entry_work_log(entry)
                    if entry.synced_to_ticketsystem:
                        stats["synced"] += 1
                except Exception as e:
                    stats["failed"] += 1
                    log.error(f"Failed to sync work log for entry {entry.id}: {e}", exc_info=True)
                finally:
                    self.db.commit()

        log.info(
            f"Work log sync of user {user.id} on ticket system {ticket_system.id} finished: "
            f"{stats['synced']} synced, {stats['failed']} failed of {stats['processed']}"
        )
        return stats

    def _find_entries_to_sync(self, user: User, ticket_system: TicketSystem, limit: Optional[int]) -> List[Entry]:
        query = self.db.query(Entry).join(Project, Entry.project_id == Project.id).filter(
            Entry.user_id == user.id,
            Entry.synced_to_ticketsystem.is_(False),
            Project.ticket_system_id == ticket_system.id,
        ).order_by(Entry.day.desc(), Entry.start.desc())

        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _can_sync(self, entry: Entry) -> bool:
        if entry.user is None or entry.project is None:
            return False
        project = entry.project
        if project.ticket_system is None and not project.has_internal_jira_project_key():
            return False
        # tokens belong to the ticket system this service talks to
        return self.auth_service.check_user_ticket_system(entry.user, self.http_client.ticket_system)

    async def update_entry_work_log(self, entry: Entry):
        """
        Creates or updates the remote work log of the entry. Zero duration
        entries have their work log removed instead.
        """
        if not _has_ticket(entry):
            return
        if not self._can_sync(entry):
            return

        ticket = entry.ticket
        if not await self.ticket_service.does_ticket_exist(ticket):
            log.debug(f"Ticket {ticket} of entry {entry.id} does not exist in Jira, skipping")
            return

        if entry.duration == 0:
            await self.delete_entry_work_log(entry)
            return

        if entry.worklog_id is not None and not await self._does_work_log_exist(ticket, entry.worklog_id):
            log.debug(f"Work log {entry.worklog_id} of entry {entry.id} vanished from Jira, creating a new one")
            entry.worklog_id = None

        work_log_data = self._prepare_work_log_data(entry)

        if entry.worklog_id:
            response = await self.http_client.put(f"issue/{ticket}/worklog/{entry.worklog_id}", work_log_data)
        else:
            response = await self.http_client.post(f"issue/{ticket}/worklog", work_log_data)

        work_log = JiraWorkLog.from_api(response)
        if not work_log.has_valid_id():
            raise JiraApiError("Unexpected response from Jira when updating worklog", 500)

        entry.worklog_id = work_log.id
        entry.synced_to_ticketsystem = True
        log.debug(f"Entry {entry.id} synced to Jira work log {ticket}/{work_log.id}")

    async def delete_entry_work_log(self, entry: Entry):
        """Removes the remote work log; safe to call repeatedly."""
        if not _has_ticket(entry):
            return
        if not entry.worklog_id:
            return
        if not self._can_sync(entry):
            return

        ticket = entry.ticket
        work_log_id = entry.worklog_id

        if not await self._does_work_log_exist(ticket, work_log_id):
            entry.worklog_id = None
            entry.synced_to_ticketsystem = False
            return

        try:
            await self.http_client.delete(f"issue/{ticket}/worklog/{work_log_id}")
        except JiraApiInvalidResourceError:
            log.debug(f"Work log {ticket}/{work_log_id} was already deleted in Jira")

        entry.worklog_id = None
        entry.synced_to_ticketsystem = False
        log.debug(f"Deleted Jira work log {ticket}/{work_log_id} of entry {entry.id}")

    async def _does_work_log_exist(self, ticket: str, work_log_id: int) -> bool:
        return await self.http_client.does_resource_exist(f"issue/{ticket}/worklog/{work_log_id}")

    def _prepare_work_log_data(self, entry: Entry) -> Dict[str, Any]:
        return {
            "comment": self._get_work_log_comment(entry),
            "started": self._get_work_log_start_date(entry),
            "timeSpentSeconds": entry.duration * 60,
        }

    def _get_work_log_comment(self, entry: Entry) -> str:
        parts = []
        if entry.customer is not None:
            parts.append(entry.customer.name)
        if entry.project is not None:
            parts.append(entry.project.name)
        if entry.activity is not None:
            parts.append(entry.activity.name)
        parts.append(entry.description or "no description")
        return " | ".join(parts)

    def _get_work_log_start_date(self, entry: Entry) -> str:
        """Entry day and start as local time, e.g. 2016-02-17T14:35:51.000+0100"""
        started = datetime.combine(entry.day, entry.start).replace(tzinfo=ZoneInfo(settings.timezone))
        return (
            started.strftime("%Y-%m-%dT%H:%M:%S")
            + f".{started.microsecond // 1000:03d}"
            + started.strftime("%z")
        )
