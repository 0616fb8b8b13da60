"""Project model with its ticket system configuration."""

from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from timetracker.database import Base


class Project(Base):
    """Project booked against by entries, optionally linked to a ticket system."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(127), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    ticket_system_id = Column(Integer, ForeignKey("ticket_systems.id"), nullable=True)
    project_lead_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Jira
    jira_id = Column(String(63), nullable=True)  # Jira project key for ticket creation
    jira_ticket = Column(String(255), nullable=True)  # Comma separated main tickets
    subtickets = Column(String(255), nullable=True)  # Maintained by subticket sync
    internal_jira_project_key = Column(String(63), nullable=True)
    internal_jira_ticket_system_id = Column(Integer, ForeignKey("ticket_systems.id"), nullable=True)

    # Relationships
    customer = relationship("Customer")
    ticket_system = relationship("TicketSystem", foreign_keys=[ticket_system_id])
    internal_jira_ticket_system = relationship("TicketSystem", foreign_keys=[internal_jira_ticket_system_id])
    project_lead = relationship("User")
    entries = relationship("Entry", back_populates="project")

    def has_internal_jira_project_key(self) -> bool:
        return bool(self.internal_jira_project_key)

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"
