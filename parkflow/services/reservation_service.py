# parkflow/services/reservation_service.py
"""
Reservations: create, confirm, cancel.

Rules:
  - one reservation in {pending, confirmed, active} per user, system-wide
  - no two blocking reservations on a space with overlapping [start, end)
  - creating a reservation moves the space available → reserved
  - cancelling releases the space, unless a stay has already started on it
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from parkflow.database import transaction
from parkflow.errors import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from parkflow.models.occupancy import Occupancy, OccupancyState
from parkflow.models.parking_lot import ParkingLot
from parkflow.models.reservation import Reservation, ReservationState
from parkflow.models.space import SpaceState
from parkflow.models.tariff import Tariff
from parkflow.models.vehicle import Vehicle
from parkflow.repository import Repository
from parkflow.services.notification_service import NotificationService
from parkflow.services.space_registry import SpaceRegistry
from parkflow.utils.clock import to_naive_utc, utcnow
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    ReservationState.PENDING: {ReservationState.CONFIRMED, ReservationState.CANCELLED},
    ReservationState.CONFIRMED: {ReservationState.CANCELLED},
    ReservationState.ACTIVE: {ReservationState.CANCELLED},
}


class ReservationManager:
    def __init__(self, db: Session, notifier: NotificationService = None, clock=utcnow):
        self.db = db
        self.notifier = notifier or NotificationService(db, clock)
        self.clock = clock
        self.reservations = Repository(db, Reservation)
        self.vehicles = Repository(db, Vehicle)
        self.tariffs = Repository(db, Tariff)
        self.spaces = SpaceRegistry(db)

    # ── Queries ───────────────────────────────────────────────────────────
    async def get(self, reservation_id: int) -> Reservation:
        return self.reservations.get_or_404(reservation_id)

    async def list_for_user(self, user_id: int, state: Optional[str] = None) -> list[Reservation]:
        q = self.reservations.query().filter(Reservation.user_id == user_id)
        if state:
            q = q.filter(Reservation.state == state)
        return q.order_by(Reservation.start_time.desc()).all()

    async def check_availability(self, space_id: int, start_time: datetime, end_time: datetime) -> bool:
        start_time, end_time = _validate_window(start_time, end_time)
        self.spaces.get(space_id)
        return self._find_overlap(space_id, start_time, end_time) is None

    def _find_overlap(self, space_id, start_time, end_time, exclude_id=None) -> Optional[Reservation]:
        q = self.reservations.query().filter(
            Reservation.space_id == space_id,
            Reservation.state.in_(ReservationState.BLOCKING),
            Reservation.start_time < end_time,
            Reservation.end_time > start_time,
        )
        if exclude_id is not None:
            q = q.filter(Reservation.id != exclude_id)
        return q.first()

    def _blocking_for_user(self, user_id) -> Optional[Reservation]:
        return self.reservations.query().filter(
            Reservation.user_id == user_id,
            Reservation.state.in_(ReservationState.BLOCKING),
        ).first()

    # ── Commands ──────────────────────────────────────────────────────────
    async def create(self, user_id: int, space_id: int, vehicle_id: int,
                     start_time: datetime, end_time: datetime,
                     tariff_id: Optional[int] = None) -> Reservation:
        start_time, end_time = _validate_window(start_time, end_time)

        with transaction(self.db):
            if self._blocking_for_user(user_id) is not None:
                raise Conflict("User already has an active reservation")

            space = self.spaces.lock(space_id)
            if space.state == SpaceState.DISABLED:
                raise InvalidState(f"Space {space.label} is disabled")
            if space.state != SpaceState.AVAILABLE:
                raise Conflict(f"Space {space.label} is not available")

            vehicle = self.vehicles.get_or_404(vehicle_id)
            if vehicle.user_id != user_id:
                raise Forbidden("Vehicle does not belong to the user")

            if tariff_id is not None:
                tariff = self.tariffs.get(tariff_id)
                if tariff is None or tariff.is_deleted:
                    raise NotFound(f"Tariff {tariff_id} not found")
                if tariff.lot_id != space.lot_id:
                    raise InvalidInput("Tariff does not belong to the space's parking lot")

            overlap = self._find_overlap(space_id, start_time, end_time)
            if overlap is not None:
                raise Conflict(f"Space {space.label} is already reserved for that period")

            reservation = self.reservations.add(Reservation(
                user_id=user_id,
                space_id=space_id,
                vehicle_id=vehicle_id,
                tariff_id=tariff_id,
                start_time=start_time,
                end_time=end_time,
                state=ReservationState.PENDING,
                created_at=self.clock(),
            ))
            self.spaces.transition(space_id, SpaceState.AVAILABLE, SpaceState.RESERVED)

        logger.info(f"[RES] Reservation {reservation.id} created: user={user_id} space={space_id} "
                    f"{start_time:%Y-%m-%d %H:%M} → {end_time:%Y-%m-%d %H:%M}")

        lot = self.db.get(ParkingLot, space.lot_id)
        await self.notifier.notify(
            user_id,
            f"Reservation created at {lot.name}, space {space.label}, "
            f"from {start_time:%Y-%m-%d %H:%M} to {end_time:%Y-%m-%d %H:%M}",
            "reservation",
        )
        await self.notifier.notify(
            lot.operator_id,
            f"New reservation in {lot.name} for space {space.label}",
            "reservation",
        )
        return reservation

    async def update_state(self, reservation_id: int, new_state: str,
                           actor_id: Optional[int] = None, reason: Optional[str] = None) -> Reservation:
        with transaction(self.db):
            reservation = self.reservations.get_for_update(reservation_id)
            current = reservation.state
            if current in ReservationState.TERMINAL:
                raise InvalidState(f"Reservation {reservation_id} is already {current}")
            if new_state not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidState(f"Reservation cannot go from {current} to {new_state}")

            values = {"state": new_state}
            if new_state == ReservationState.CANCELLED:
                live_stay = self.db.query(Occupancy).filter(
                    Occupancy.reservation_id == reservation_id,
                    Occupancy.state != OccupancyState.CLOSED,
                ).first()
                if live_stay is not None:
                    raise Conflict("Reservation has a vehicle checked in and cannot be cancelled")
                values["cancelled_at"] = self.clock()
                values["cancel_reason"] = reason or ("user" if actor_id == reservation.user_id else "operator")

            rows = self.reservations.update_where(reservation_id, {"state": current}, values)
            if rows != 1:
                raise Conflict(f"Reservation {reservation_id} changed concurrently")
            if new_state == ReservationState.CANCELLED:
                self.spaces.release_hold(reservation.space_id)

        logger.info(f"[RES] Reservation {reservation_id}: {current} → {new_state} (by {actor_id})")

        space = self.spaces.get(reservation.space_id)
        lot = self.db.get(ParkingLot, space.lot_id)
        await self.notifier.notify(
            reservation.user_id,
            f"Your reservation at {lot.name}, space {space.label}, is now {new_state}",
            "reservation",
        )
        if actor_id is not None and actor_id == reservation.user_id:
            await self.notifier.notify(
                lot.operator_id,
                f"A user changed their reservation at {lot.name}, space {space.label}, to {new_state}",
                "reservation",
            )
        return reservation


def _validate_window(start_time, end_time):
    """Return the window as naive UTC, the form every stored time uses."""
    if start_time is None or end_time is None:
        raise InvalidInput("start_time and end_time are required")
    if not isinstance(start_time, datetime) or not isinstance(end_time, datetime):
        raise InvalidInput("start_time and end_time must be datetimes")
    start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
    if start_time >= end_time:
        raise InvalidInput("start_time must be before end_time")
    return start_time, end_time
