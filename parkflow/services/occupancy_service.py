# parkflow/services/occupancy_service.py
"""
Physical stays: check-in, exit request, direct exit.

State machine:
  open ──request_exit──▶ exit-requested ──settle (payment_service)──▶ closed
  open ──direct_exit──────────────────────────────────────────────▶ closed

request_exit and direct_exit exclude each other: both read the occupancy
under a row lock and write it back with a state-conditioned update.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
from parkflow.database import transaction
from parkflow.errors import Conflict, Forbidden, InvalidInput, InvalidState
from parkflow.models.occupancy import Occupancy, OccupancyState
from parkflow.models.parking_lot import ParkingLot
from parkflow.models.payment import Payment, PaymentState, ReceiptType
from parkflow.models.reservation import Reservation, ReservationState
from parkflow.models.space import SpaceState
from parkflow.models.vehicle import Vehicle
from parkflow.repository import Repository
from parkflow.services.notification_service import NotificationService
from parkflow.services.receipt_service import next_receipt_number
from parkflow.services.space_registry import SpaceRegistry
from parkflow.services.tariff_engine import ResolvedTariff, compute_amount, elapsed_minutes, resolve_tariff
from parkflow.utils.clock import utcnow
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Quote:
    elapsed_minutes: int
    amount: Decimal
    tariff: ResolvedTariff


@dataclass
class ExitQuote:
    occupancy: Occupancy
    amount: Decimal
    elapsed_minutes: int
    tariff: ResolvedTariff
    payment: Optional[Payment] = None
    already_requested: bool = False   # informational: exit had been requested before


def quote_stay(db: Session, occupancy: Occupancy, now: datetime) -> Quote:
    minutes = elapsed_minutes(occupancy.entry_time, now)
    tariff = resolve_tariff(db, occupancy)
    return Quote(minutes, compute_amount(tariff, minutes), tariff)


def pending_payment_for(db: Session, occupancy_id: int) -> Optional[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.occupancy_id == occupancy_id, Payment.state == PaymentState.PENDING)
        .with_for_update()
        .first()
    )


def close_stay(db: Session, spaces: SpaceRegistry, occupancy: Occupancy, now: datetime,
               values: dict = None) -> Occupancy:
    """
    Close an occupancy and apply its side effects: space occupied → available,
    originating reservation → completed. Runs inside the caller's transaction;
    any failed condition raises so the whole unit rolls back.
    """
    occupancies = Repository(db, Occupancy)
    close_values = {"state": OccupancyState.CLOSED, "exit_confirmed_at": now}
    close_values.update(values or {})
    rows = occupancies.update_where(
        occupancy.id,
        {"state": (OccupancyState.OPEN, OccupancyState.EXIT_REQUESTED)},
        close_values,
    )
    if rows != 1:
        raise Conflict(f"Occupancy {occupancy.id} was closed concurrently")

    spaces.transition(occupancy.space_id, SpaceState.OCCUPIED, SpaceState.AVAILABLE)

    if occupancy.reservation_id is not None:
        rows = Repository(db, Reservation).update_where(
            occupancy.reservation_id,
            {"state": ReservationState.BLOCKING},
            {"state": ReservationState.COMPLETED},
        )
        if rows != 1:
            raise Conflict(f"Reservation {occupancy.reservation_id} is no longer active")
    return occupancy


class OccupancyManager:
    def __init__(self, db: Session, notifier: NotificationService = None, clock=utcnow):
        self.db = db
        self.notifier = notifier or NotificationService(db, clock)
        self.clock = clock
        self.occupancies = Repository(db, Occupancy)
        self.reservations = Repository(db, Reservation)
        self.vehicles = Repository(db, Vehicle)
        self.spaces = SpaceRegistry(db)

    # ── Queries ───────────────────────────────────────────────────────────
    async def get(self, occupancy_id: int) -> Occupancy:
        return self.occupancies.get_or_404(occupancy_id)

    async def active_for_user(self, user_id: int) -> Optional[Occupancy]:
        return (
            self.occupancies.query()
            .filter(Occupancy.user_id == user_id, Occupancy.state != OccupancyState.CLOSED)
            .order_by(Occupancy.entry_time.desc())
            .first()
        )

    async def estimate(self, occupancy_id: int) -> ExitQuote:
        """What the stay would cost if it ended now. Writes nothing."""
        occupancy = self.occupancies.get_or_404(occupancy_id)
        if occupancy.state == OccupancyState.CLOSED:
            raise InvalidState(f"Occupancy {occupancy_id} is already closed")
        quote = quote_stay(self.db, occupancy, self.clock())
        return ExitQuote(occupancy, quote.amount, quote.elapsed_minutes, quote.tariff,
                         already_requested=occupancy.state == OccupancyState.EXIT_REQUESTED)

    # ── Commands ──────────────────────────────────────────────────────────
    async def check_in(self, space_id: int, vehicle_id: int, user_id: int,
                       reservation_id: Optional[int] = None) -> Occupancy:
        now = self.clock()
        with transaction(self.db):
            vehicle = self.vehicles.get_or_404(vehicle_id)
            if vehicle.user_id != user_id:
                raise Forbidden("Vehicle does not belong to the user")

            parked = self.occupancies.query().filter(
                Occupancy.vehicle_id == vehicle_id,
                Occupancy.state != OccupancyState.CLOSED,
            ).first()
            if parked is not None:
                raise Conflict(f"Vehicle {vehicle.plate_number} is already parked")

            if reservation_id is not None:
                reservation = self.reservations.get_for_update(reservation_id)
                if reservation.state not in ReservationState.BLOCKING:
                    raise InvalidState(f"Reservation {reservation_id} is {reservation.state}")
                if reservation.user_id != user_id:
                    raise Forbidden("Reservation does not belong to the user")
                if reservation.space_id != space_id:
                    raise InvalidInput("Reservation is for a different space")
                if reservation.vehicle_id != vehicle_id:
                    raise InvalidInput("Reservation is for a different vehicle")
                if self.occupancies.query().filter(Occupancy.reservation_id == reservation_id).first():
                    raise Conflict(f"Reservation {reservation_id} is already checked in")

                self.spaces.transition(space_id, SpaceState.RESERVED, SpaceState.OCCUPIED)
                rows = self.reservations.update_where(
                    reservation_id, {"state": reservation.state}, {"state": ReservationState.ACTIVE}
                )
                if rows != 1:
                    raise Conflict(f"Reservation {reservation_id} changed concurrently")
            else:
                self.spaces.transition(space_id, SpaceState.AVAILABLE, SpaceState.OCCUPIED)

            occupancy = self.occupancies.add(Occupancy(
                reservation_id=reservation_id,
                user_id=user_id,
                space_id=space_id,
                vehicle_id=vehicle_id,
                entry_time=now,
                state=OccupancyState.OPEN,
            ))

        kind = f"reservation {reservation_id}" if reservation_id else "walk-in"
        logger.info(f"[OCC] Check-in {occupancy.id}: space={space_id} vehicle={vehicle_id} ({kind})")

        space = self.spaces.get(space_id)
        lot = self.db.get(ParkingLot, space.lot_id)
        await self.notifier.notify(
            user_id, f"Check-in at {lot.name}, space {space.label}, at {now:%Y-%m-%d %H:%M}", "occupancy"
        )
        await self.notifier.notify(
            lot.operator_id, f"Vehicle {vehicle.plate_number} checked in at {lot.name}, space {space.label}",
            "occupancy",
        )
        return occupancy

    async def request_exit(self, occupancy_id: int, requester_id: Optional[int] = None) -> ExitQuote:
        """
        Quote the stay and leave exactly one pending payment for it.
        Calling again recomputes and updates that same payment.
        """
        now = self.clock()
        with transaction(self.db):
            occupancy = self.occupancies.get_for_update(occupancy_id)
            current = occupancy.state
            if current == OccupancyState.CLOSED:
                raise InvalidState(f"Occupancy {occupancy_id} is already closed")
            already_requested = current == OccupancyState.EXIT_REQUESTED

            quote = quote_stay(self.db, occupancy, now)
            rows = self.occupancies.update_where(occupancy_id, {"state": current}, {
                "state": OccupancyState.EXIT_REQUESTED,
                "exit_requested_at": now,
                "elapsed_minutes": quote.elapsed_minutes,
                "computed_amount": quote.amount,
                "tariff_id": quote.tariff.tariff_id,
            })
            if rows != 1:
                raise Conflict(f"Occupancy {occupancy_id} changed concurrently")

            payment = pending_payment_for(self.db, occupancy_id)
            if payment is None:
                payment = Repository(self.db, Payment).add(Payment(
                    occupancy_id=occupancy_id,
                    tariff_id=quote.tariff.tariff_id,
                    amount=quote.amount,
                    state=PaymentState.PENDING,
                    created_at=now,
                ))
            elif Decimal(str(payment.amount)) != quote.amount:
                logger.info(f"[OCC] Pending payment {payment.id} re-quoted: {payment.amount} → {quote.amount}")
                payment.amount = quote.amount
                payment.tariff_id = quote.tariff.tariff_id
                self.db.flush()

        logger.info(f"[OCC] Exit requested {occupancy_id} by {requester_id}: "
                    f"{quote.elapsed_minutes} min, amount={quote.amount} ({quote.tariff.source} tariff)")
        if not already_requested:
            await self.notifier.notify(
                occupancy.user_id,
                f"Exit requested: {quote.elapsed_minutes} min, amount due {quote.amount}",
                "payment",
            )
        return ExitQuote(occupancy, quote.amount, quote.elapsed_minutes, quote.tariff,
                         payment=payment, already_requested=already_requested)

    async def direct_exit(self, occupancy_id: int, requester_id: Optional[int] = None,
                          method_id: Optional[int] = None,
                          receipt_type: str = ReceiptType.RECEIPT) -> ExitQuote:
        """
        Close the stay at once, bypassing the pending-payment step. Not allowed
        once an exit request or a pending payment exists for the occupancy.
        With a payment method, a completed payment is recorded as well.
        """
        now = self.clock()
        with transaction(self.db):
            occupancy = self.occupancies.get_for_update(occupancy_id)
            if occupancy.state == OccupancyState.CLOSED:
                raise InvalidState(f"Occupancy {occupancy_id} is already closed")
            if occupancy.state == OccupancyState.EXIT_REQUESTED or occupancy.exit_requested_at is not None:
                raise Conflict("Exit already requested, settle the pending payment instead")
            if pending_payment_for(self.db, occupancy_id) is not None:
                raise Conflict("A pending payment exists, settle it instead")

            quote = quote_stay(self.db, occupancy, now)
            close_stay(self.db, self.spaces, occupancy, now, {
                "elapsed_minutes": quote.elapsed_minutes,
                "computed_amount": quote.amount,
                "tariff_id": quote.tariff.tariff_id,
            })

            payment = None
            if method_id is not None:
                series, number = next_receipt_number(self.db, receipt_type)
                payment = Repository(self.db, Payment).add(Payment(
                    occupancy_id=occupancy_id,
                    tariff_id=quote.tariff.tariff_id,
                    amount=quote.amount,
                    state=PaymentState.COMPLETED,
                    method_id=method_id,
                    receipt_type=receipt_type,
                    receipt_series=series,
                    receipt_number=number,
                    created_at=now,
                    settled_at=now,
                    settled_by=requester_id,
                ))

        logger.info(f"[OCC] Direct exit {occupancy_id} by {requester_id}: "
                    f"{quote.elapsed_minutes} min, amount={quote.amount}")
        await self.notifier.notify(
            occupancy.user_id,
            f"Your stay has ended: {quote.elapsed_minutes} min, amount {quote.amount}",
            "occupancy",
        )
        return ExitQuote(occupancy, quote.amount, quote.elapsed_minutes, quote.tariff, payment=payment)
