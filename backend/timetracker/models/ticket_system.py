"""Ticket system model for remote issue trackers."""

from sqlalchemy import Column, Integer, String, Boolean, Text
from timetracker.database import Base


class TicketSystem(Base):
    """Remote ticket system configuration (Jira, OTRS, ...)."""

    __tablename__ = "ticket_systems"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(50), nullable=False, default="JIRA")  # see TicketSystemType
    book_time = Column(Boolean, default=False, nullable=False)  # sync work logs
    url = Column(String(255), nullable=False)
    ticket_url = Column(String(255), nullable=False, default="")  # e.g. https://jira/browse/%s

    # Credentials
    login = Column(String(255), nullable=True)
    oauth_consumer_key = Column(String(255), nullable=True)
    oauth_consumer_secret = Column(String(255), nullable=True)
    public_key = Column(Text, nullable=True)
    private_key = Column(Text, nullable=True)  # PEM, used for RSA-SHA1 signing

    def __repr__(self):
        return f"<TicketSystem(id={self.id}, name='{self.name}', type='{self.type}')>"
