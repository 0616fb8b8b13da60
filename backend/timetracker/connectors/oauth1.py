"""OAuth 1.0a RSA-SHA1 request signing for httpx."""

from typing import Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.oauth1 import ClientAuth, SIGNATURE_RSA_SHA1

from timetracker.connectors.errors import JiraApiError

# Protocol parameters callers may pass as query params; they are sent in the header instead
HEADER_ONLY_PARAMS = ("oauth_callback", "oauth_verifier")


class OAuth1RsaAuth(httpx.Auth):
    """
    Signs every request with the consumer's RSA private key, entirely in memory.

    Jira expects the OAuth parameters in the Authorization header. JSON bodies
    are not part of the OAuth signature base string, so only method, URL and
    OAuth parameters are signed and the request body is sent untouched.
    `oauth_callback` and `oauth_verifier` given as query parameters are moved
    into the header; Authlib reads OAuth parameters from one location only.
    """

    def __init__(self, consumer_key: str, rsa_key: str, token: str = "", token_secret: str = ""):
        self.consumer_key = consumer_key
        self.rsa_key = rsa_key
        self.token = token
        self.token_secret = token_secret

    def _client_auth(self, callback: Optional[str] = None, verifier: Optional[str] = None) -> ClientAuth:
        return ClientAuth(
            self.consumer_key,
            token=self.token or None,
            token_secret=self.token_secret or None,
            redirect_uri=callback,
            verifier=verifier,
            rsa_key=self.rsa_key,
            signature_method=SIGNATURE_RSA_SHA1,
        )

    def auth_flow(self, request: httpx.Request):
        params = request.url.params
        callback = params.get("oauth_callback")
        verifier = params.get("oauth_verifier")
        for name in HEADER_ONLY_PARAMS:
            if name in params:
                request.url = request.url.copy_remove_param(name)

        try:
            _, headers, _ = self._client_auth(callback, verifier).sign(request.method, str(request.url), {}, b"")
        except (AuthlibBaseError, ValueError) as e:
            raise JiraApiError(f"Could not sign OAuth request: {e}", 500) from e
        request.headers["Authorization"] = headers["Authorization"]
        yield request
