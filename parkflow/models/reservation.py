# parkflow/models/reservation.py
"""
Reservations: a user's claim on a space for a [start, end) window.
Blocking states are pending, confirmed and active everywhere in the code.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from parkflow.database import Base


class ReservationState:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    BLOCKING = (PENDING, CONFIRMED, ACTIVE)
    TERMINAL = (COMPLETED, CANCELLED)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservation_space_window", "space_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    space_id = Column(Integer, ForeignKey("spaces.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    tariff_id = Column(Integer, ForeignKey("tariffs.id"))
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    state = Column(String(20), nullable=False, default=ReservationState.PENDING, index=True)
    created_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancel_reason = Column(String(100))   # user | operator | expired

    def __repr__(self):
        return f"<Reservation {self.id} space={self.space_id} state={self.state}>"
