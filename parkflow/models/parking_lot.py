# parkflow/models/parking_lot.py
"""
Parking lots. A lot owns its spaces and tariffs; capacity is the number of
spaces, never a stored counter.
"""

from sqlalchemy import Column, Integer, String, Numeric
from sqlalchemy.orm import relationship
from parkflow.database import Base


class ParkingLot(Base):
    __tablename__ = "parking_lots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    address = Column(String(300))
    operator_id = Column(Integer, index=True)     # lot administrator, receives operator notifications
    hourly_rate = Column(Numeric(10, 2))          # legacy flat per-hour rate, tariff fallback

    spaces = relationship("Space", back_populates="lot")

    @property
    def capacity(self) -> int:
        return len(self.spaces)

    def __repr__(self):
        return f"<ParkingLot {self.id} name={self.name}>"
