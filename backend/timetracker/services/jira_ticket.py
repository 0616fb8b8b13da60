import logging
from typing import Any, Dict, List, Optional

from timetracker.connectors.errors import (
    JiraApiError,
    JiraApiInvalidResourceError,
    JiraApiUnauthorizedError,
)
from timetracker.connectors.jira_http_client import JiraHttpClientService
from timetracker.models.entry import Entry
from timetracker.schemas.jira import JiraIssue, JiraSearchResult, JiraTransition

log = logging.getLogger(__name__)

EPIC_SEARCH_LIMIT = 100

# Activity name fragments mapped to the Jira issue type of new tickets
ISSUE_TYPE_KEYWORDS = [
    (("bug", "fix"), "Bug"),
    (("feature", "development"), "Story"),
    (("support", "maintenance"), "Task"),
]
DEFAULT_ISSUE_TYPE = "Task"


class JiraTicketService:
    """
    Ticket level operations on top of the signed Jira HTTP client.
    """

    def __init__(self, http_client: JiraHttpClientService):
        self.http_client = http_client

    async def create_ticket(self, entry: Entry) -> Dict[str, Any]:
        project = entry.project
        if project is None:
            raise JiraApiError("Entry has no project", 400)

        if not project.jira_id:
            raise JiraApiError("Project has no Jira ID configured", 400)

        ticket_data = {
            "fields": {
                "project": {"key": project.jira_id},
                "summary": self._generate_ticket_summary(entry),
                "description": entry.description or "No description provided",
                "issuetype": {"name": self._get_issue_type(entry)},
            }
        }

        response = await self.http_client.post("issue", ticket_data)
        if not isinstance(response, dict) or not response.get("key"):
            raise JiraApiError("Failed to create Jira ticket", 500)

        log.info(f"Created Jira ticket {response['key']} for entry {entry.id}")
        return response

    async def search_tickets(self, jql: str, fields: Optional[List[str]] = None, limit: int = 1) -> Dict[str, Any]:
        """JQL search; POST so that long queries are not limited by URL length."""
        search_data: Dict[str, Any] = {
            "jql": jql,
            "maxResults": limit,
        }
        if fields:
            search_data["fields"] = fields

        return await self.http_client.post("search", search_data)

    async def does_ticket_exist(self, ticket_key: str) -> bool:
        if not ticket_key:
            return False

        try:
            await self.http_client.get(f"issue/{ticket_key}")
            return True
        except JiraApiUnauthorizedError:
            raise
        except JiraApiError as e:
            log.debug(f"Jira ticket {ticket_key} not available: {e.message}")
            return False

    async def get_ticket(self, ticket_key: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        if not ticket_key:
            raise JiraApiError("Ticket key cannot be empty", 400)

        url = f"issue/{ticket_key}"
        if fields:
            url += "?fields=" + ",".join(fields)

        return await self.http_client.get(url)

    async def get_subtickets(self, ticket_key: str) -> List[Dict[str, Any]]:
        """Subtasks of a ticket as {key, summary, status, assignee}; missing fields become empty values."""
        if not ticket_key:
            return []

        try:
            response = await self.http_client.get(f"issue/{ticket_key}")
        except JiraApiError as e:
            raise JiraApiError(
                f"Failed to get subtasks for ticket {ticket_key}: {e.message}",
                e.code,
                e.redirect_url,
            ) from e

        issue = JiraIssue.from_api(response)
        if issue.fields is None:
            return []

        subtasks = []
        for subtask in issue.fields.subtasks:
            fields = subtask.fields
            subtasks.append({
                "key": subtask.key or "",
                "summary": (fields.summary if fields else None) or "",
                "status": (fields.status.name if fields and fields.status else None) or "",
                "assignee": fields.assignee.display_name if fields and fields.assignee else None,
            })
        return subtasks

    async def get_subticket_keys(self, ticket_key: str) -> List[str]:
        """
        Keys of all tickets below the given one: its subtasks and, for epics,
        the issues linked to the epic together with their subtasks.
        """
        if not ticket_key:
            return []

        try:
            response = await self.http_client.get(f"issue/{ticket_key}")
        except JiraApiInvalidResourceError:
            log.debug(f"Jira ticket {ticket_key} does not exist, no subtickets")
            return []

        issue = JiraIssue.from_api(response)
        if issue.fields is None:
            return []

        keys = issue.fields.get_subtask_keys()

        if issue.is_epic():
            search = JiraSearchResult.from_api(
                await self.search_tickets(f'"Epic Link" = {ticket_key}', ["key", "subtasks"], EPIC_SEARCH_LIMIT)
            )
            for epic_issue in search.issues:
                if not epic_issue.key:
                    continue
                keys.append(epic_issue.key)
                if epic_issue.fields:
                    keys.extend(epic_issue.fields.get_subtask_keys())

        return keys

    async def update_ticket(self, ticket_key: str, update_data: Dict[str, Any]) -> Dict[str, Any]:
        if not ticket_key:
            raise JiraApiError("Ticket key cannot be empty", 400)

        return await self.http_client.put(f"issue/{ticket_key}", update_data)

    async def add_comment(self, ticket_key: str, comment: str) -> Dict[str, Any]:
        if not ticket_key:
            raise JiraApiError("Ticket key cannot be empty", 400)
        if not comment:
            raise JiraApiError("Comment cannot be empty", 400)

        return await self.http_client.post(f"issue/{ticket_key}/comment", {"body": comment})

    async def get_transitions(self, ticket_key: str) -> List[Dict[str, Any]]:
        if not ticket_key:
            return []

        try:
            response = await self.http_client.get(f"issue/{ticket_key}/transitions")
        except JiraApiError as e:
            log.debug(f"Could not load transitions of {ticket_key}: {e.message}")
            return []

        if not isinstance(response, dict) or not isinstance(response.get("transitions"), list):
            return []

        transitions = []
        for transition_data in response["transitions"]:
            if not isinstance(transition_data, dict):
                continue
            transition = JiraTransition.from_api(transition_data)
            transitions.append({
                "id": transition.id or "",
                "name": transition.name or "",
                "to": {
                    "id": (transition.to.id if transition.to else None) or "",
                    "name": (transition.to.name if transition.to else None) or "",
                },
            })
        return transitions

    async def transition_ticket(self, ticket_key: str, transition_id: str, fields: Optional[Dict[str, Any]] = None):
        if not ticket_key:
            raise JiraApiError("Ticket key cannot be empty", 400)
        if not transition_id:
            raise JiraApiError("Transition ID cannot be empty", 400)

        transition_data: Dict[str, Any] = {"transition": {"id": transition_id}}
        if fields:
            transition_data["fields"] = fields

        await self.http_client.post(f"issue/{ticket_key}/transitions", transition_data)

    def _generate_ticket_summary(self, entry: Entry) -> str:
        parts = []
        if entry.customer is not None:
            parts.append(entry.customer.name)
        if entry.project is not None:
            parts.append(entry.project.name)
        if entry.activity is not None:
            parts.append(entry.activity.name)

        if parts:
            return " - ".join(parts)
        return "Timetracker Entry"

    def _get_issue_type(self, entry: Entry) -> str:
        if entry.activity is None:
            return DEFAULT_ISSUE_TYPE

        activity_name = (entry.activity.name or "").lower()
        for keywords, issue_type in ISSUE_TYPE_KEYWORDS:
            if any(keyword in activity_name for keyword in keywords):
                return issue_type
        return DEFAULT_ISSUE_TYPE
