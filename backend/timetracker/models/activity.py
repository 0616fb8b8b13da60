"""Activity model."""

from sqlalchemy import Column, Integer, String
from timetracker.database import Base


class Activity(Base):

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)

    def __repr__(self):
        return f"<Activity(id={self.id}, name='{self.name}')>"
