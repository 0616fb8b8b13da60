"""Database models."""

from timetracker.models.ticket_system import TicketSystem
from timetracker.models.user import User
from timetracker.models.user_ticket_system import UserTicketSystem
from timetracker.models.customer import Customer
from timetracker.models.activity import Activity
from timetracker.models.project import Project
from timetracker.models.entry import Entry

__all__ = [
    "TicketSystem",
    "User",
    "UserTicketSystem",
    "Customer",
    "Activity",
    "Project",
    "Entry",
]
