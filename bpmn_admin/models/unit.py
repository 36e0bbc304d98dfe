"""
Unit Model
Organisational units referenced by task permissions (performerUnits)
"""

from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from . import Base


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Unit(id={self.id}, name='{self.name}')>"
