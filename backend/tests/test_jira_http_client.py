import httpx
import pytest

from timetracker.connectors.errors import (
    JiraApiError,
    JiraApiInvalidResourceError,
    JiraApiUnauthorizedError,
)
from timetracker.connectors.jira_http_client import SignedClientCache

from conftest import JIRA_URL, verify_oauth_signature


@pytest.fixture
def http_client(factory, authorized_user, ticket_system):
    return factory.create_http_client(authorized_user, ticket_system)


class TestJiraHttpClientService:
    @pytest.mark.asyncio
    async def test_get_decodes_json(self, http_client, fake_jira):
        fake_jira.add("GET", "issue/SA-1", json={"key": "SA-1"})

        assert await http_client.get("issue/SA-1") == {"key": "SA-1"}
        assert str(fake_jira.calls[0].url) == JIRA_URL + "/rest/api/latest/issue/SA-1"

    @pytest.mark.asyncio
    async def test_leading_slash_is_ignored(self, http_client, fake_jira):
        fake_jira.add("GET", "myself", json={"name": "developer"})

        assert await http_client.get("/myself") == {"name": "developer"}

    @pytest.mark.asyncio
    async def test_requests_are_signed_with_rsa_sha1(self, http_client, fake_jira, private_key_pem):
        fake_jira.add_issue("SA-1")

        await http_client.get("issue/SA-1?fields=summary,status")

        oauth_params = verify_oauth_signature(fake_jira.calls[0], private_key_pem)
        assert oauth_params["oauth_signature_method"] == "RSA-SHA1"
        assert oauth_params["oauth_consumer_key"] == "timetracker"
        assert oauth_params["oauth_token"] == "access-token"
        assert fake_jira.calls[0].url.params["fields"] == "summary,status"

    @pytest.mark.asyncio
    async def test_signature_does_not_cover_json_body(self, http_client, fake_jira, private_key_pem):
        fake_jira.add("POST", "issue/SA-1/worklog", status=201, json={"id": "1"})

        await http_client.post("issue/SA-1/worklog", {"timeSpentSeconds": 60})

        oauth_params = verify_oauth_signature(fake_jira.calls[0], private_key_pem)
        assert "oauth_body_hash" not in oauth_params

    @pytest.mark.asyncio
    async def test_json_body_is_sent_unchanged(self, http_client, fake_jira):
        fake_jira.add("POST", "issue/SA-1/worklog", status=201, json={"id": "1"})

        await http_client.post("issue/SA-1/worklog", {"timeSpentSeconds": 60, "comment": "a | b"})

        request = fake_jira.calls[0]
        assert fake_jira.body(request) == {"timeSpentSeconds": 60, "comment": "a | b"}
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_empty_body_returns_empty_dict(self, http_client, fake_jira):
        fake_jira.add("DELETE", "issue/SA-1/worklog/42", status=204)

        assert await http_client.delete("issue/SA-1/worklog/42") == {}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, http_client, fake_jira):
        fake_jira.add("GET", "issue/SA-1", text="<html>maintenance</html>")

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.get("issue/SA-1")

        assert exc_info.value.code == 500
        assert "Invalid JSON response from Jira" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_not_found_raises_invalid_resource(self, http_client):
        with pytest.raises(JiraApiInvalidResourceError) as exc_info:
            await http_client.get("issue/NOPE-1")

        assert exc_info.value.code == 404
        assert exc_info.value.message == "Jira: Resource not found: issue/NOPE-1"

    @pytest.mark.asyncio
    async def test_error_messages_are_joined(self, http_client, fake_jira):
        fake_jira.add("PUT", "issue/SA-1", status=500, json={"errorMessages": ["First", "Second"]})

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.put("issue/SA-1", {"fields": {}})

        assert not isinstance(exc_info.value, JiraApiInvalidResourceError)
        assert exc_info.value.code == 500
        assert exc_info.value.message == "Jira: Jira API error [500]: First, Second"

    @pytest.mark.asyncio
    async def test_field_errors_are_used_without_error_messages(self, http_client, fake_jira):
        fake_jira.add(
            "POST", "issue/SA-1/worklog", status=400,
            json={"errorMessages": [], "errors": {"timeLogged": "You must indicate the time spent working."}},
        )

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.post("issue/SA-1/worklog", {"timeSpentSeconds": 0})

        assert exc_info.value.code == 400
        assert "You must indicate the time spent working." in exc_info.value.message

    @pytest.mark.asyncio
    async def test_empty_error_body(self, http_client, fake_jira):
        fake_jira.add("GET", "issue/SA-1", status=503)

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.get("issue/SA-1")

        assert exc_info.value.message == "Jira: Jira API error [503]: Empty response"

    @pytest.mark.asyncio
    async def test_unauthorized_response_raises_redirect(self, http_client, fake_jira):
        fake_jira.add("GET", "myself", status=401, text="oauth_problem=token_rejected")

        with pytest.raises(JiraApiUnauthorizedError) as exc_info:
            await http_client.get("myself")

        assert exc_info.value.code == 401
        assert exc_info.value.redirect_url == JIRA_URL + "/plugins/servlet/oauth/authorize?oauth_token="
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_network_error_is_api_error(self, http_client, fake_jira):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        fake_jira.add("GET", "issue/SA-1", handler=refuse)

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.get("issue/SA-1")

        assert exc_info.value.code == 500
        assert "Network error connecting to Jira" in exc_info.value.message
        assert not isinstance(exc_info.value, JiraApiInvalidResourceError)

    @pytest.mark.asyncio
    async def test_timeout_is_api_error(self, http_client, fake_jira):
        def too_slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fake_jira.add("GET", "issue/SA-1", handler=too_slow)

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.get("issue/SA-1")

        assert exc_info.value.code == 500

    @pytest.mark.asyncio
    async def test_missing_token_raises_redirect_without_request(self, factory, user, ticket_system, fake_jira):
        http_client = factory.create_http_client(user, ticket_system)

        with pytest.raises(JiraApiUnauthorizedError) as exc_info:
            await http_client.get_client("user")

        assert exc_info.value.redirect_url == "https://jira.example.com/plugins/servlet/oauth/authorize?oauth_token="
        assert fake_jira.calls == []

    @pytest.mark.asyncio
    async def test_invalid_mode(self, http_client):
        with pytest.raises(ValueError):
            await http_client.get_client("admin")

    @pytest.mark.asyncio
    async def test_missing_private_key(self, db, http_client, ticket_system):
        ticket_system.private_key = ""
        db.commit()

        with pytest.raises(JiraApiError) as exc_info:
            await http_client.get_client("new")

        assert exc_info.value.message == "Jira: OAuth private key not configured"
        assert exc_info.value.code == 500

    @pytest.mark.asyncio
    async def test_clients_are_cached_per_credentials(self, http_client):
        user_client = await http_client.get_client("user")
        assert await http_client.get_client("user") is user_client
        assert await http_client.get_client("new") is not user_client
        assert await http_client.get_client("request", "req-token") is not user_client

    @pytest.mark.asyncio
    async def test_does_resource_exist(self, http_client, fake_jira):
        fake_jira.add("HEAD", "issue/SA-1/worklog/42")

        assert await http_client.does_resource_exist("issue/SA-1/worklog/42") is True
        assert await http_client.does_resource_exist("issue/SA-1/worklog/43") is False

    @pytest.mark.asyncio
    async def test_does_resource_exist_network_error(self, http_client, fake_jira):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        fake_jira.add("HEAD", "issue/SA-1/worklog/42", handler=refuse)

        assert await http_client.does_resource_exist("issue/SA-1/worklog/42") is False


class TestSignedClientCache:
    @pytest.mark.asyncio
    async def test_evicts_least_recently_used_and_closes_it(self):
        cache = SignedClientCache(max_size=2)
        first = await cache.get_or_create("a", httpx.AsyncClient)
        second = await cache.get_or_create("b", httpx.AsyncClient)

        # touch "a" so that "b" is the oldest
        assert await cache.get_or_create("a", httpx.AsyncClient) is first
        await cache.get_or_create("c", httpx.AsyncClient)

        assert len(cache) == 2
        assert "b" not in cache
        assert second.is_closed
        assert not first.is_closed

        await cache.aclose()
        assert first.is_closed
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_failed_factory_is_not_cached(self):
        cache = SignedClientCache(max_size=2)

        def broken():
            raise JiraApiError("OAuth private key not configured", 500)

        with pytest.raises(JiraApiError):
            await cache.get_or_create("a", broken)

        assert "a" not in cache
