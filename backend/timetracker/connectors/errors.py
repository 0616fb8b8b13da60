"""Errors raised by the Jira integration."""

from typing import Optional

MESSAGE_PREFIX = "Jira: "


class JiraApiError(Exception):
    """
    Generic Jira failure: transport error, malformed response, OAuth handshake
    failure or misconfiguration. `code` mirrors the HTTP status where one exists.
    """

    def __init__(self, message: str = "", code: int = 0, redirect_url: Optional[str] = None):
        if not message.startswith(MESSAGE_PREFIX):
            message = MESSAGE_PREFIX + message
        super().__init__(message)
        self.message = message
        self.code = code
        self.redirect_url = redirect_url


class JiraApiInvalidResourceError(JiraApiError):
    """The requested Jira resource does not exist (HTTP 404)."""


class JiraApiUnauthorizedError(JiraApiError):
    """No usable OAuth token; `redirect_url` points at the Jira authorize page."""
