"""User model for time tracking users."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from timetracker.database import Base


class User(Base):
    """User tracking time and owning OAuth tokens per ticket system."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)

    # Relationships
    ticket_system_tokens = relationship("UserTicketSystem", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"
