# parkflow/models/occupancy.py
"""
Occupancies: a vehicle physically in a space, from check-in until the
payment that closes it is settled. Walk-ins have no reservation_id.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index, UniqueConstraint, text
from parkflow.database import Base


class OccupancyState:
    OPEN = "open"
    EXIT_REQUESTED = "exit-requested"
    CLOSED = "closed"


class Occupancy(Base):
    __tablename__ = "occupancies"
    __table_args__ = (
        UniqueConstraint("reservation_id", name="uq_occupancy_reservation"),
        # At most one stay that is not closed per space
        Index(
            "uq_occupancy_space_live", "space_id", unique=True,
            postgresql_where=text("state != 'closed'"),
            sqlite_where=text("state != 'closed'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"))
    user_id = Column(Integer, nullable=False, index=True)
    space_id = Column(Integer, ForeignKey("spaces.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    entry_time = Column(DateTime, nullable=False, index=True)
    exit_requested_at = Column(DateTime)
    exit_confirmed_at = Column(DateTime)
    elapsed_minutes = Column(Integer)
    computed_amount = Column(Numeric(10, 2))
    tariff_id = Column(Integer, ForeignKey("tariffs.id"))   # tariff used for the last quote
    state = Column(String(20), nullable=False, default=OccupancyState.OPEN, index=True)

    @property
    def is_walk_in(self) -> bool:
        return self.reservation_id is None

    def __repr__(self):
        return f"<Occupancy {self.id} space={self.space_id} state={self.state}>"
