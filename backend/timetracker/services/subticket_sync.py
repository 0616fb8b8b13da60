import logging
import re
from typing import List, Union

from sqlalchemy.orm import Session

from timetracker.connectors.errors import JiraApiUnauthorizedError
from timetracker.models.project import Project
from timetracker.services.jira_factory import JiraServiceFactory

log = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(value: str):
    """Case-insensitive natural ordering: PRJ-2 before PRJ-10."""
    return [int(part) if part.isdigit() else part.lower() for part in _DIGITS.split(value)]


class SubticketSyncService:
    """
    Refreshes the `subtickets` list of a project from Jira, using the Jira
    token of the project lead.
    """

    def __init__(self, db: Session, factory: JiraServiceFactory):
        self.db = db
        self.factory = factory

    def _get_project(self, project_or_id: Union[Project, int]) -> Project:
        if isinstance(project_or_id, Project):
            return project_or_id

        project = self.db.get(Project, project_or_id)
        if project is None:
            raise ValueError("Project does not exist")
        return project

    async def sync_project_subtickets(self, project_or_id: Union[Project, int]) -> List[str]:
        """Returns the stored subticket keys, main tickets included."""
        project = self._get_project(project_or_id)

        ticket_system = project.ticket_system
        if ticket_system is None:
            raise ValueError("No ticket system configured for project")

        if not project.jira_ticket:
            if project.subtickets:
                project.subtickets = ""
                self.db.commit()
            return []

        lead = project.project_lead
        if lead is None:
            raise ValueError(f"Project has no lead user: {project.name}")

        services = self.factory.create(lead, ticket_system)
        if not services.auth.get_tokens(lead, ticket_system)["token"]:
            raise ValueError(f"Project user has no token for ticket system: {lead.username}@{project.name}")

        main_tickets = [ticket.strip() for ticket in project.jira_ticket.split(",") if ticket.strip()]
        all_subtickets: List[str] = []
        try:
            for main_ticket in main_tickets:
                # main tickets are listed as well to make matching easy
                all_subtickets.append(main_ticket)
                all_subtickets.extend(await services.tickets.get_subticket_keys(main_ticket))
        except JiraApiUnauthorizedError as e:
            raise JiraApiUnauthorizedError(
                f"{e.message} - project {project.name}", e.code, e.redirect_url
            ) from e

        all_subtickets.sort(key=natural_sort_key)

        project.subtickets = ",".join(all_subtickets)
        self.db.commit()

        log.info(f"Project {project.id} ({project.name}): {len(all_subtickets)} subtickets")
        log.debug(f"Subtickets of project {project.id}: {project.subtickets}")
        return all_subtickets
