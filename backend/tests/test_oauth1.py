import json

import httpx
import pytest

from timetracker.connectors.errors import JiraApiError
from timetracker.connectors.oauth1 import OAuth1RsaAuth

from conftest import JIRA_URL, verify_oauth_signature


def sign(auth: OAuth1RsaAuth, method: str, url: str, **kwargs) -> httpx.Request:
    return next(auth.auth_flow(httpx.Request(method, url, **kwargs)))


def test_callback_is_moved_into_signed_header(private_key_pem):
    auth = OAuth1RsaAuth("timetracker", private_key_pem)
    callback = "https://timetracker.example.com/jiraoauthcallback?tsid=1"

    request = sign(
        auth, "POST", JIRA_URL + "/plugins/servlet/oauth/request-token",
        params={"oauth_callback": callback, "locale": "de"},
    )

    oauth_params = verify_oauth_signature(request, private_key_pem)
    assert oauth_params["oauth_callback"] == callback
    assert "oauth_token" not in oauth_params
    assert dict(request.url.params) == {"locale": "de"}


def test_verifier_is_moved_into_signed_header(private_key_pem):
    auth = OAuth1RsaAuth("timetracker", private_key_pem, token="req-token")

    request = sign(
        auth, "POST", JIRA_URL + "/plugins/servlet/oauth/access-token",
        params={"oauth_verifier": "verifier-1"},
    )

    oauth_params = verify_oauth_signature(request, private_key_pem)
    assert oauth_params["oauth_verifier"] == "verifier-1"
    assert oauth_params["oauth_token"] == "req-token"
    assert "oauth_verifier" not in request.url.params


def test_query_parameters_are_signed(private_key_pem):
    auth = OAuth1RsaAuth("timetracker", private_key_pem, token="access-token", token_secret="token-secret")

    request = sign(auth, "GET", JIRA_URL + "/rest/api/latest/search?jql=project%20%3D%20SA&maxResults=5")

    verify_oauth_signature(request, private_key_pem)
    assert request.url.params["jql"] == "project = SA"


def test_json_body_is_left_alone(private_key_pem):
    auth = OAuth1RsaAuth("timetracker", private_key_pem, token="access-token", token_secret="token-secret")

    request = sign(auth, "POST", JIRA_URL + "/rest/api/latest/issue/SA-1/worklog", json={"timeSpentSeconds": 60})

    assert "oauth_body_hash" not in verify_oauth_signature(request, private_key_pem)
    assert json.loads(request.content) == {"timeSpentSeconds": 60}


def test_broken_private_key():
    auth = OAuth1RsaAuth("timetracker", "not a pem key")

    with pytest.raises(JiraApiError) as exc_info:
        sign(auth, "GET", JIRA_URL + "/rest/api/latest/myself")

    assert exc_info.value.code == 500
    assert exc_info.value.message.startswith("Jira: Could not sign OAuth request")
