# parkflow/models/vehicle.py
"""
Registered vehicles. Reservations and check-ins require the vehicle to
belong to the caller.
"""

from sqlalchemy import Column, Integer, String, DateTime
from parkflow.database import Base


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    plate_number = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(200))
    registered_at = Column(DateTime)

    def __repr__(self):
        return f"<Vehicle {self.plate_number} user={self.user_id}>"
