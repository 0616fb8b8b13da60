import asyncio
import httpx
import json
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from timetracker.config import settings
from timetracker.connectors.errors import JiraApiError, JiraApiInvalidResourceError
from timetracker.connectors.oauth1 import OAuth1RsaAuth
from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User

log = logging.getLogger(__name__)

JIRA_API_PATH = "/rest/api/latest/"

TOKEN_MODES = ("user", "new", "request")


class SignedClientCache:
    """
    Bounded LRU of signed httpx clients keyed by ticket system and credential pair.
    Pure cache: a client may be dropped and rebuilt at any time.
    """

    def __init__(self, max_size: int = 16):
        self.max_size = max(1, max_size)
        self._clients: "OrderedDict[str, httpx.AsyncClient]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def get_or_create(self, key: str, factory: Callable[[], httpx.AsyncClient]) -> httpx.AsyncClient:
        async with self._lock:
            client = self._clients.get(key)
            if client is not None:
                self._clients.move_to_end(key)
                return client

            client = factory()
            self._clients[key] = client
            while len(self._clients) > self.max_size:
                _, evicted = self._clients.popitem(last=False)
                await evicted.aclose()
            return client

    def __contains__(self, key: str) -> bool:
        return key in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    async def aclose(self):
        async with self._lock:
            while self._clients:
                _, client = self._clients.popitem()
                await client.aclose()


class JiraHttpClientService:
    """
    Signed HTTP transport to the Jira REST API of one ticket system, acting
    for one user.

    Decodes JSON responses and turns HTTP failures into the Jira error
    taxonomy: 401 starts the OAuth re-authorization, 404 becomes
    JiraApiInvalidResourceError, everything else JiraApiError.
    """

    def __init__(
        self,
        user: User,
        ticket_system: TicketSystem,
        auth_service,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[SignedClientCache] = None,
    ):
        self.user = user
        self.ticket_system = ticket_system
        self.auth_service = auth_service
        self.transport = transport
        self._cache = cache or SignedClientCache(settings.jira_client_cache_size)

    @property
    def base_url(self) -> str:
        return (self.ticket_system.url or "").rstrip("/")

    async def get_client(self, mode: str = "user", request_token: Optional[str] = None) -> httpx.AsyncClient:
        """
        Returns a signed client.
        - user: the stored access token of the user (raises the OAuth redirect if there is none)
        - new: no token, for fetching a request token
        - request: the given request token, for exchanging it against an access token
        """
        token, secret = self._resolve_tokens(mode, request_token)
        cache_key = f"{self.ticket_system.id}:{token}:{secret}"
        return await self._cache.get_or_create(cache_key, lambda: self._create_client(token, secret))

    def _resolve_tokens(self, mode: str, request_token: Optional[str]) -> Tuple[str, str]:
        if mode == "user":
            tokens = self.auth_service.get_tokens(self.user, self.ticket_system)
            if tokens["token"] == "" and tokens["secret"] == "":
                self.auth_service.throw_unauthorized_redirect(self.ticket_system)
            return tokens["token"], tokens["secret"]
        if mode == "new":
            return "", ""
        if mode == "request":
            return request_token or "", ""
        raise ValueError(f"Invalid token mode: {mode}")

    def _create_client(self, token: str, secret: str) -> httpx.AsyncClient:
        private_key = self.ticket_system.private_key or ""
        if not private_key.strip():
            raise JiraApiError("OAuth private key not configured", 500)

        consumer_key = self.ticket_system.oauth_consumer_key or self.ticket_system.login or ""
        auth = OAuth1RsaAuth(consumer_key, private_key, token=token, token_secret=secret)

        log.debug(f"Creating signed Jira client for {self.base_url} (consumer: {consumer_key}, with token: {bool(token)})")
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=settings.jira_request_timeout,
            transport=self.transport,
        )

    async def get(self, url: str) -> Any:
        return await self._send_request("GET", url)

    async def post(self, url: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return await self._send_request("POST", url, data)

    async def put(self, url: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return await self._send_request("PUT", url, data)

    async def delete(self, url: str) -> Any:
        return await self._send_request("DELETE", url)

    async def _send_request(self, method: str, url: str, data: Optional[Dict[str, Any]] = None) -> Any:
        client = await self.get_client()
        path = JIRA_API_PATH + url.lstrip("/")

        kwargs = {}
        if data:
            kwargs["json"] = data

        try:
            log.trace(f"Jira API {method} {self.base_url}{path}")
            response = await client.request(method, path, **kwargs)
            log.trace(f"Jira API response: {response.status_code}")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._handle_status_error(e, url)
        except httpx.RequestError as e:
            error_msg = f"Network error connecting to Jira: {e}"
            log.error(error_msg)
            raise JiraApiError(error_msg, 500) from e

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise JiraApiError(f"Invalid JSON response from Jira: {e}", 500) from e

    async def does_resource_exist(self, url: str) -> bool:
        """HEAD existence check; never raises for HTTP or network failures."""
        client = await self.get_client()
        path = JIRA_API_PATH + url.lstrip("/")

        try:
            response = await client.head(path)
        except httpx.HTTPError as e:
            log.debug(f"Jira HEAD {path} failed: {e}")
            return False

        return response.status_code == 200

    def _handle_status_error(self, error: httpx.HTTPStatusError, url: str):
        status = error.response.status_code
        error_message = self._extract_error_message(error.response.text)

        if status == 401:
            log.warning(f"Jira rejected the OAuth token of user {self.user.id} for {self.base_url}")
            self.auth_service.throw_unauthorized_redirect(self.ticket_system, error)

        if status == 404:
            raise JiraApiInvalidResourceError(f"Resource not found: {url}", 404) from error

        log.error(f"Jira HTTP {status} error for {url}: {error_message}")
        raise JiraApiError(f"Jira API error [{status}]: {error_message}", status) from error

    @staticmethod
    def _extract_error_message(body: str) -> str:
        if body == "":
            return "Empty response"

        try:
            data = json.loads(body)
        except ValueError:
            return body

        if not isinstance(data, dict):
            return body

        error_messages = data.get("errorMessages")
        if isinstance(error_messages, list) and error_messages:
            return ", ".join(str(message) for message in error_messages)

        errors = data.get("errors")
        if isinstance(errors, dict) and errors:
            return ", ".join(str(message) for message in errors.values())

        return body

    async def aclose(self):
        await self._cache.aclose()
