"""Stored OAuth credentials per user and ticket system."""

from sqlalchemy import Column, Integer, Boolean, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from timetracker.database import Base


class UserTicketSystem(Base):
    """OAuth token pair of a user for one ticket system."""

    __tablename__ = "user_ticket_systems"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ticket_system_id = Column(Integer, ForeignKey("ticket_systems.id"), nullable=False)

    access_token = Column(Text, nullable=False, default="")  # Encrypted
    token_secret = Column(Text, nullable=False, default="")  # Encrypted
    avoid_connection = Column(Boolean, default=False, nullable=False)

    # Relationships
    user = relationship("User", back_populates="ticket_system_tokens")
    ticket_system = relationship("TicketSystem")

    __table_args__ = (
        UniqueConstraint('user_id', 'ticket_system_id', name='uq_user_ticket_system'),
    )

    def __repr__(self):
        return f"<UserTicketSystem(user_id={self.user_id}, ticket_system_id={self.ticket_system_id}, avoid_connection={self.avoid_connection})>"
