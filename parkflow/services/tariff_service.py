# parkflow/services/tariff_service.py
"""
Tariff catalogue per lot.
One active tariff per type per lot, and a lot always keeps at least one
active hourly tariff once it has one. A tariff already billed on a settled
payment is never edited in place: the edit retires it and creates a new row,
and live reservations holding the old row are moved to the new one.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy.orm import Session
from parkflow.database import transaction
from parkflow.errors import Conflict, InvalidInput, NotFound
from parkflow.models.parking_lot import ParkingLot
from parkflow.models.payment import Payment, PaymentState
from parkflow.models.reservation import Reservation, ReservationState
from parkflow.models.tariff import Tariff, TariffType
from parkflow.repository import Repository
from parkflow.services.tariff_engine import TYPE_ALIASES, normalize_type
from parkflow.utils.clock import utcnow
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


def _canonical_type(tariff_type) -> str:
    key = str(tariff_type or "").strip().lower()
    if key not in TariffType.ALL and key not in TYPE_ALIASES:
        raise InvalidInput(f"Invalid tariff type '{tariff_type}'")
    return normalize_type(key)


def _valid_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"Invalid tariff amount '{amount}'")
    if not value.is_finite() or value < 0:
        raise InvalidInput(f"Invalid tariff amount '{amount}'")
    return value


class TariffService:
    def __init__(self, db: Session, clock=utcnow):
        self.db = db
        self.clock = clock
        self.tariffs = Repository(db, Tariff)
        self.lots = Repository(db, ParkingLot)

    def _active(self, lot_id: int):
        return self.tariffs.query().filter(Tariff.lot_id == lot_id, Tariff.deleted_at.is_(None))

    def _get_in_lot(self, tariff_id: int, lot_id: int) -> Tariff:
        tariff = self.tariffs.get(tariff_id)
        if tariff is None or tariff.is_deleted or tariff.lot_id != lot_id:
            raise NotFound(f"Tariff {tariff_id} not found in lot {lot_id}")
        return tariff

    def _is_billed(self, tariff_id: int) -> bool:
        return self.db.query(Payment.id).filter(
            Payment.tariff_id == tariff_id, Payment.state == PaymentState.COMPLETED
        ).first() is not None

    async def list_for_lot(self, lot_id: int) -> list[Tariff]:
        self.lots.get_or_404(lot_id)
        return self._active(lot_id).order_by(Tariff.id).all()

    async def create(self, lot_id: int, tariff_type: str, amount, conditions: Optional[str] = None) -> Tariff:
        canonical = _canonical_type(tariff_type)
        value = _valid_amount(amount)
        with transaction(self.db):
            self.lots.get_or_404(lot_id)
            if self._active(lot_id).filter(Tariff.tariff_type == canonical).first() is not None:
                raise Conflict(f"Lot {lot_id} already has a '{canonical}' tariff")
            tariff = self.tariffs.add(Tariff(lot_id=lot_id, tariff_type=canonical, amount=value,
                                             conditions=conditions or None, created_at=self.clock()))
        logger.info(f"Tariff {tariff.id} created: lot={lot_id} {canonical}={value}")
        return tariff

    async def update(self, tariff_id: int, lot_id: int, tariff_type: Optional[str] = None,
                     amount=None, conditions: Optional[str] = None, actor_id: Optional[int] = None) -> Tariff:
        with transaction(self.db):
            tariff = self._get_in_lot(tariff_id, lot_id)
            new_type = tariff.tariff_type if tariff_type is None else _canonical_type(tariff_type)
            new_amount = tariff.amount if amount is None else _valid_amount(amount)
            new_conditions = tariff.conditions if conditions is None else (conditions or None)

            if new_type != tariff.tariff_type:
                duplicate = self._active(lot_id).filter(
                    Tariff.tariff_type == new_type, Tariff.id != tariff_id
                ).first()
                if duplicate is not None:
                    raise Conflict(f"Lot {lot_id} already has a '{new_type}' tariff")
                if tariff.tariff_type == TariffType.HOURLY and not self._other_hourly(lot_id, tariff_id):
                    raise Conflict("A lot must keep at least one 'hourly' tariff")

            if self._is_billed(tariff_id):
                # Settled payments keep pointing at the old row and its price
                tariff.deleted_at = self.clock()
                tariff.deleted_by = actor_id
                self.db.flush()
                tariff = self.tariffs.add(Tariff(lot_id=lot_id, tariff_type=new_type, amount=new_amount,
                                                 conditions=new_conditions, created_at=self.clock()))
                # Live reservations follow the tariff the customer chose
                moved = self.db.query(Reservation).filter(
                    Reservation.tariff_id == tariff_id,
                    Reservation.state.in_(ReservationState.BLOCKING),
                ).update({Reservation.tariff_id: tariff.id}, synchronize_session="fetch")
                logger.info(f"Tariff {tariff_id} retired and replaced by {tariff.id} "
                            f"({moved} live reservation(s) moved)")
            else:
                tariff.tariff_type = new_type
                tariff.amount = new_amount
                tariff.conditions = new_conditions
                self.db.flush()
        logger.info(f"Tariff {tariff.id} updated: lot={lot_id} {new_type}={new_amount}")
        return tariff

    async def remove(self, tariff_id: int, lot_id: int, actor_id: Optional[int] = None) -> Tariff:
        with transaction(self.db):
            tariff = self._get_in_lot(tariff_id, lot_id)
            if tariff.tariff_type == TariffType.HOURLY and not self._other_hourly(lot_id, tariff_id):
                raise Conflict("Cannot remove the last 'hourly' tariff of a lot")
            tariff.deleted_at = self.clock()
            tariff.deleted_by = actor_id
        logger.info(f"Tariff {tariff_id} removed (soft delete) by {actor_id}")
        return tariff

    def _other_hourly(self, lot_id: int, tariff_id: int) -> bool:
        return self._active(lot_id).filter(
            Tariff.tariff_type == TariffType.HOURLY, Tariff.id != tariff_id
        ).first() is not None
