"""Entry model for tracked time spans."""

from sqlalchemy import Column, Integer, String, Date, Time, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from timetracker.database import Base


class Entry(Base):
    """Tracked time span, optionally mirrored as a remote work log."""

    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, index=True)

    # Ticket information
    ticket = Column(String(32), nullable=False, default="")
    description = Column(Text, nullable=False, default="")

    # Time tracking
    day = Column(Date, nullable=False)
    start = Column(Time, nullable=False)
    end = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False, default=0)  # minutes

    # Sync status
    worklog_id = Column(Integer, nullable=True)
    synced_to_ticketsystem = Column(Boolean, default=False, nullable=False)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=True)

    # Relationships
    user = relationship("User")
    project = relationship("Project", back_populates="entries")
    customer = relationship("Customer")
    activity = relationship("Activity")

    __table_args__ = (
        Index('idx_entries_user_synced', 'user_id', 'synced_to_ticketsystem'),
        Index('idx_entries_day_start', 'day', 'start'),
    )

    def __repr__(self):
        return f"<Entry(id={self.id}, ticket='{self.ticket}', duration={self.duration}, worklog_id={self.worklog_id})>"
