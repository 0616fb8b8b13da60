from enum import Enum


class TicketSystemType(str, Enum):
    """Kinds of remote ticket systems a TicketSystem record can point at."""
    JIRA = "JIRA"
    OTRS = "OTRS"
    FRESHDESK = "FRESHDESK"
