import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from timetracker.connectors.errors import JiraApiError
from timetracker.constants.ticket_system_type import TicketSystemType
from timetracker.models.entry import Entry
from timetracker.models.project import Project
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User
from timetracker.services.jira_factory import JiraServiceFactory
from timetracker.utils.keyed_lock import worklog_sync_lock

log = logging.getLogger(__name__)


class JiraIntegrationService:
    """
    Decides whether and against which ticket system an entry is synced to
    Jira, and offers save, delete and bulk sync of entry work logs.
    """

    def __init__(self, db: Session, factory: JiraServiceFactory):
        self.db = db
        self.factory = factory

    def get_ticket_system(self, project: Project) -> Optional[TicketSystem]:
        """Internal Jira ticket system of the project if configured, else its own one."""
        if project.has_internal_jira_project_key() and project.internal_jira_ticket_system_id is not None:
            internal_ticket_system = self.db.get(TicketSystem, project.internal_jira_ticket_system_id)
            if internal_ticket_system is not None:
                return internal_ticket_system

        return project.ticket_system

    def resolve_ticket_system(self, entry: Entry, override: Optional[TicketSystem] = None) -> Optional[TicketSystem]:
        if override is not None:
            return override
        if entry.project is None:
            return None
        return self.get_ticket_system(entry.project)

    @staticmethod
    def _books_time_in_jira(ticket_system: Optional[TicketSystem]) -> bool:
        return (
            ticket_system is not None
            and bool(ticket_system.book_time)
            and ticket_system.type == TicketSystemType.JIRA.value
        )

    def should_sync_with_jira(self, ticket_system: Optional[TicketSystem], entry: Entry) -> bool:
        if not self._books_time_in_jira(ticket_system):
            return False

        if entry.ticket in (None, "", "0"):
            return False

        return (entry.duration or 0) > 0

    async def save_worklog(self, entry: Entry, ticket_system: Optional[TicketSystem] = None) -> bool:
        """
        Creates or updates the Jira work log of the entry.
        Returns False if the entry is not synced to Jira; errors propagate.
        """
        if entry.project is None:
            log.warning(f"Entry {entry.id} has no project, not syncing to Jira")
            return False

        ticket_system = self.resolve_ticket_system(entry, ticket_system)
        if not self.should_sync_with_jira(ticket_system, entry):
            log.debug(f"Entry {entry.id} does not sync with Jira")
            return False

        user = entry.user
        if user is None:
            raise JiraApiError("Entry has no associated user", 400)

        services = self.factory.create(user, ticket_system)
        try:
            async with worklog_sync_lock.acquire((user.id, ticket_system.id)):
                await services.work_logs.update_entry_work_log(entry)
                self.db.commit()
        except Exception as e:
            log.error(f"Jira sync of entry {entry.id} failed: {e}", exc_info=True)
            raise

        log.info(f"Jira work log of entry {entry.id} synced (worklog id: {entry.worklog_id})")
        return True

    async def delete_worklog(self, entry: Entry, ticket_system: Optional[TicketSystem] = None) -> bool:
        """
        Removes the Jira work log of the entry and clears the local reference.
        Returns False if there is nothing to delete; errors propagate.
        """
        if entry.worklog_id is None:
            log.info(f"Entry {entry.id} has no worklog id to delete")
            return False

        if entry.project is None and ticket_system is None:
            raise JiraApiError("Entry has no associated project", 400)

        ticket_system = self.resolve_ticket_system(entry, ticket_system)
        if ticket_system is None:
            raise JiraApiError("Project has no ticket system configured", 400)

        user = entry.user
        if user is None:
            raise JiraApiError("Entry has no associated user", 400)

        # zero duration entries still need their work log removed, so only the ticket system is checked
        if not self._books_time_in_jira(ticket_system):
            log.debug(f"Ticket system {ticket_system.id} does not book time in Jira, keeping worklog of entry {entry.id}")
            return False

        services = self.factory.create(user, ticket_system)
        try:
            async with worklog_sync_lock.acquire((user.id, ticket_system.id)):
                await services.work_logs.delete_entry_work_log(entry)
                entry.worklog_id = None
                entry.synced_to_ticketsystem = False
                self.db.commit()
        except Exception as e:
            log.error(f"Deleting Jira work log of entry {entry.id} failed: {e}", exc_info=True)
            raise

        log.info(f"Jira work log of entry {entry.id} deleted")
        return True

    async def bulk_sync_entries(
        self,
        entries: Iterable[Entry],
        ticket_system: Optional[TicketSystem] = None,
    ) -> Dict[int, Dict[str, Any]]:
        """Saves every entry independently; failures are reported per entry, never raised."""
        results: Dict[int, Dict[str, Any]] = {}

        for entry in entries:
            try:
                synced = await self.save_worklog(entry, ticket_system)
                results[entry.id] = {
                    "success": synced,
                    "message": "Work log synced" if synced else "Entry is not synced to Jira",
                }
            except Exception as e:
                log.error(f"Bulk sync failed for entry {entry.id}: {e}")
                results[entry.id] = {"success": False, "message": str(e)}

        return results

    def needs_sync(self, entry: Entry) -> bool:
        if entry.synced_to_ticketsystem:
            return False
        return self.should_sync_with_jira(self.resolve_ticket_system(entry), entry)

    def get_entries_needing_sync(
        self,
        user: Optional[User] = None,
        since: Optional[Union[date, datetime]] = None,
    ) -> List[Entry]:
        query = self.db.query(Entry).filter(Entry.synced_to_ticketsystem.is_(False))

        if user is not None:
            query = query.filter(Entry.user_id == user.id)

        if since is not None:
            if isinstance(since, datetime):
                since = since.date()
            query = query.filter(Entry.day >= since)

        entries = query.order_by(Entry.day.desc(), Entry.start.desc()).all()
        return [entry for entry in entries if self.needs_sync(entry)]

    async def validate_jira_connection(self, ticket_system: TicketSystem, user: User) -> bool:
        """True if the user's stored token is accepted by the Jira ticket system."""
        if ticket_system.type != TicketSystemType.JIRA.value:
            return False

        services = self.factory.create(user, ticket_system)
        try:
            services.auth.authenticate(user, ticket_system)
            await services.http_client.get("myself")
            return True
        except JiraApiError as e:
            log.error(f"Jira connection validation failed for user {user.id}: {e.message}")
            return False

    async def get_jira_project_info(self, project_key: str, ticket_system: TicketSystem, user: User) -> Optional[Dict[str, Any]]:
        if ticket_system.type != TicketSystemType.JIRA.value:
            return None

        services = self.factory.create(user, ticket_system)
        try:
            return await services.http_client.get(f"project/{project_key}")
        except JiraApiError as e:
            log.error(f"Failed to get Jira project {project_key}: {e.message}")
            return None
