"""OAuth 1.0a three-legged flow against Jira and the per-user token store."""

import httpx
import logging
from typing import Dict, Optional
from urllib.parse import parse_qsl

from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from timetracker.config import settings
from timetracker.connectors.errors import JiraApiError, JiraApiUnauthorizedError
from timetracker.connectors.jira_http_client import JiraHttpClientService
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User
from timetracker.models.user_ticket_system import UserTicketSystem
from timetracker.utils.encrypt import decrypt_token, encrypt_token

log = logging.getLogger(__name__)

OAUTH_REQUEST_PATH = "/plugins/servlet/oauth/request-token"
OAUTH_ACCESS_PATH = "/plugins/servlet/oauth/access-token"
OAUTH_AUTHORIZE_PATH = "/plugins/servlet/oauth/authorize"


class JiraAuthenticationService:
    """
    Drives the OAuth handshake with a Jira ticket system and keeps the
    resulting token pair per (user, ticket system), encrypted at rest.
    """

    def __init__(self, db: Session, callback_url: Optional[str] = None):
        self.db = db
        self.callback_url = callback_url or settings.jira_oauth_callback_url

    async def fetch_request_token(
        self,
        ticket_system: TicketSystem,
        user: User,
        http_client: Optional[JiraHttpClientService] = None,
    ) -> str:
        """
        Fetches a temporary request token and stores it as an unfinished
        authorization. The caller redirects the user to get_oauth_authorize_url().
        """
        http_client = http_client or JiraHttpClientService(user, ticket_system, self)
        client = await http_client.get_client("new")

        try:
            response = await client.post(
                OAUTH_REQUEST_PATH,
                params={"oauth_callback": self.get_oauth_callback_url(ticket_system)},
            )
        except httpx.HTTPError as e:
            log.error(f"Failed to fetch OAuth request token from {ticket_system.url}: {e}")
            raise JiraApiError(f"Network error connecting to Jira: {e}", 500) from e

        tokens = self._extract_tokens(response)
        if not tokens.get("oauth_token"):
            raise JiraApiError("Could not fetch OAuth request token", 500)

        self._store_token(user, ticket_system, tokens["oauth_token"], "", avoid_connection=True)
        log.info(f"Fetched OAuth request token for user {user.id} on ticket system {ticket_system.id}")
        return tokens["oauth_token"]

    async def fetch_access_token(
        self,
        ticket_system: TicketSystem,
        user: User,
        request_token: str,
        verifier: str,
        http_client: Optional[JiraHttpClientService] = None,
    ) -> Optional[Dict[str, str]]:
        """
        Exchanges an authorized request token for the long-lived access token.
        A "denied" verifier removes the stored token and returns None.
        """
        if verifier == "denied":
            log.info(f"User {user.id} denied Jira access for ticket system {ticket_system.id}")
            self.delete_tokens(user, ticket_system)
            return None

        http_client = http_client or JiraHttpClientService(user, ticket_system, self)
        client = await http_client.get_client("request", request_token)

        try:
            response = await client.post(OAUTH_ACCESS_PATH, params={"oauth_verifier": verifier})
        except httpx.HTTPError as e:
            log.error(f"Failed to fetch OAuth access token from {ticket_system.url}: {e}")
            raise JiraApiError(f"Network error connecting to Jira: {e}", 500) from e

        tokens = self._extract_tokens(response)
        if not tokens.get("oauth_token") or not tokens.get("oauth_token_secret"):
            raise JiraApiError("Could not fetch OAuth access token", 500)

        self._store_token(user, ticket_system, tokens["oauth_token"], tokens["oauth_token_secret"])
        log.info(f"Stored Jira access token for user {user.id} on ticket system {ticket_system.id}")
        return {"token": tokens["oauth_token"], "secret": tokens["oauth_token_secret"]}

    def _extract_tokens(self, response: httpx.Response) -> Dict[str, str]:
        body = response.text.strip()
        if body == "":
            raise JiraApiError("Empty response from Jira OAuth endpoint", 500)

        tokens: Dict[str, str] = {}
        for key, value in parse_qsl(body, keep_blank_values=True):
            # repeated keys are comma joined
            tokens[key] = f"{tokens[key]},{value}" if key in tokens else value

        if "oauth_problem" in tokens:
            log.warning(f"Jira OAuth problem: {tokens['oauth_problem']}")
            raise JiraApiError(f"OAuth problem: {tokens['oauth_problem']}", 401)

        if "oauth_token" not in tokens and response.is_error:
            raise JiraApiError(f"Jira API error [{response.status_code}]: {body}", response.status_code)

        return tokens

    def _get_user_ticket_system(self, user: User, ticket_system: TicketSystem) -> Optional[UserTicketSystem]:
        return self.db.query(UserTicketSystem).filter(
            UserTicketSystem.user_id == user.id,
            UserTicketSystem.ticket_system_id == ticket_system.id,
        ).first()

    def _store_token(
        self,
        user: User,
        ticket_system: TicketSystem,
        token: str,
        secret: str,
        avoid_connection: bool = False,
    ) -> UserTicketSystem:
        user_ticket_system = self._get_user_ticket_system(user, ticket_system)
        if user_ticket_system is None:
            user_ticket_system = UserTicketSystem(user_id=user.id, ticket_system_id=ticket_system.id)
            self.db.add(user_ticket_system)

        user_ticket_system.access_token = encrypt_token(token)
        user_ticket_system.token_secret = encrypt_token(secret)
        user_ticket_system.avoid_connection = avoid_connection

        self.db.commit()
        return user_ticket_system

    def get_tokens(self, user: User, ticket_system: TicketSystem) -> Dict[str, str]:
        user_ticket_system = self._get_user_ticket_system(user, ticket_system)
        if user_ticket_system is None:
            return {"token": "", "secret": ""}

        try:
            return {
                "token": decrypt_token(user_ticket_system.access_token),
                "secret": decrypt_token(user_ticket_system.token_secret),
            }
        except (InvalidToken, ValueError):
            log.debug(f"Stored Jira token of user {user.id} is not encrypted, using it as is")
            return {
                "token": user_ticket_system.access_token or "",
                "secret": user_ticket_system.token_secret or "",
            }

    def find_user_by_request_token(self, ticket_system: TicketSystem, request_token: str) -> Optional[User]:
        """The user whose unfinished authorization holds this request token."""
        pending = self.db.query(UserTicketSystem).filter(
            UserTicketSystem.ticket_system_id == ticket_system.id,
            UserTicketSystem.avoid_connection.is_(True),
        ).all()

        for user_ticket_system in pending:
            try:
                token = decrypt_token(user_ticket_system.access_token)
            except (InvalidToken, ValueError):
                token = user_ticket_system.access_token
            if token and token == request_token:
                return user_ticket_system.user
        return None

    def delete_tokens(self, user: User, ticket_system: TicketSystem):
        user_ticket_system = self._get_user_ticket_system(user, ticket_system)
        if user_ticket_system is not None:
            self.db.delete(user_ticket_system)
            self.db.commit()
            log.info(f"Deleted Jira token of user {user.id} for ticket system {ticket_system.id}")

    def check_user_ticket_system(self, user: User, ticket_system: TicketSystem) -> bool:
        """True if the user finished the OAuth flow for this ticket system."""
        user_ticket_system = self._get_user_ticket_system(user, ticket_system)
        return user_ticket_system is not None and not user_ticket_system.avoid_connection

    def get_oauth_authorize_url(self, ticket_system: TicketSystem, token: str) -> str:
        return f"{ticket_system.url}{OAUTH_AUTHORIZE_PATH}?oauth_token={token}"

    def get_oauth_callback_url(self, ticket_system: TicketSystem) -> str:
        return f"{self.callback_url}?tsid={ticket_system.id}"

    def throw_unauthorized_redirect(self, ticket_system: TicketSystem, cause: Optional[BaseException] = None):
        raise JiraApiUnauthorizedError(
            "Unauthorized. Redirecting to Jira OAuth.",
            401,
            self.get_oauth_authorize_url(ticket_system, ""),
        ) from cause

    def authenticate(self, user: User, ticket_system: TicketSystem):
        """Raises JiraApiUnauthorizedError unless a finished, non-empty token pair is stored."""
        if not self.check_user_ticket_system(user, ticket_system):
            self.throw_unauthorized_redirect(ticket_system)

        tokens = self.get_tokens(user, ticket_system)
        if tokens["token"] == "" or tokens["secret"] == "":
            self.throw_unauthorized_redirect(ticket_system)
