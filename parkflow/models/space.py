# parkflow/models/space.py
"""
Physical parking spaces. `state` is only ever changed through
SpaceRegistry.transition (compare-and-swap).
"""

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from parkflow.database import Base


class SpaceState:
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    DISABLED = "disabled"

    ALL = {AVAILABLE, RESERVED, OCCUPIED, DISABLED}


class Space(Base):
    __tablename__ = "spaces"
    __table_args__ = (UniqueConstraint("lot_id", "label", name="uq_space_lot_label"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    lot_id = Column(Integer, ForeignKey("parking_lots.id"), nullable=False, index=True)
    label = Column(String(50), nullable=False)
    state = Column(String(20), nullable=False, default=SpaceState.AVAILABLE, index=True)

    lot = relationship("ParkingLot", back_populates="spaces")

    def __repr__(self):
        return f"<Space {self.id} label={self.label} state={self.state}>"
