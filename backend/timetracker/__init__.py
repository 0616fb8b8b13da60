"""Timetracker Jira integration service."""

from timetracker.utils import log_setup  # noqa: F401  registers the TRACE level

__version__ = "1.0.0"
