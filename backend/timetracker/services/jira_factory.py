from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from timetracker.config import settings
from timetracker.connectors.jira_http_client import JiraHttpClientService, SignedClientCache
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User
from timetracker.services.jira_authentication import JiraAuthenticationService
from timetracker.services.jira_ticket import JiraTicketService
from timetracker.services.jira_work_log import JiraWorkLogService


@dataclass
class JiraServices:
    """Jira services wired for one (user, ticket system) pair."""
    auth: JiraAuthenticationService
    http_client: JiraHttpClientService
    tickets: JiraTicketService
    work_logs: JiraWorkLogService


class JiraServiceFactory:
    """
    Builds JiraServices bundles that share one signed-client cache.
    `transport` replaces the network layer of every client (used by tests).
    """

    def __init__(
        self,
        db: Session,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[SignedClientCache] = None,
        callback_url: Optional[str] = None,
    ):
        self.db = db
        self.transport = transport
        self.cache = cache or SignedClientCache(settings.jira_client_cache_size)
        self.auth_service = JiraAuthenticationService(db, callback_url)

    def create_http_client(self, user: User, ticket_system: TicketSystem) -> JiraHttpClientService:
        return JiraHttpClientService(user, ticket_system, self.auth_service, transport=self.transport, cache=self.cache)

    def create(self, user: User, ticket_system: TicketSystem) -> JiraServices:
        http_client = self.create_http_client(user, ticket_system)
        tickets = JiraTicketService(http_client)
        return JiraServices(
            auth=self.auth_service,
            http_client=http_client,
            tickets=tickets,
            work_logs=JiraWorkLogService(self.db, http_client, tickets, self.auth_service),
        )

    async def aclose(self):
        await self.cache.aclose()
