# parkflow/services/payment_service.py
"""
Payment settlement.

Settling a payment is one transaction that also closes the occupancy, frees
the space and completes the reservation. Either all four writes commit or
none do. Settling an already completed payment is a no-op success.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
from parkflow.config import settings
from parkflow.database import transaction
from parkflow.errors import Conflict, InvalidInput, InvalidState, NotFound
from parkflow.models.occupancy import Occupancy, OccupancyState
from parkflow.models.parking_lot import ParkingLot
from parkflow.models.payment import Payment, PaymentState, ReceiptType
from parkflow.models.space import Space
from parkflow.models.vehicle import Vehicle
from parkflow.repository import Repository
from parkflow.services.notification_service import NotificationService
from parkflow.services.occupancy_service import close_stay, pending_payment_for, quote_stay
from parkflow.services.receipt_service import next_receipt_number
from parkflow.services.space_registry import SpaceRegistry
from parkflow.utils.clock import utcnow
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PendingPaymentView:
    payment: Payment
    occupancy: Occupancy
    space: Space
    vehicle: Vehicle


@dataclass
class SettlementResult:
    payment: Payment
    already_settled: bool = False   # informational: nothing was changed by this call


@dataclass
class CashSettlement:
    payment: Payment
    change: Optional[Decimal]


@dataclass
class ReceiptView:
    payment_id: int
    receipt_type: str
    series: str
    number: int
    code: str
    issued_at: datetime
    amount: Decimal
    currency: str
    lot_name: str
    lot_address: Optional[str]
    space_label: str
    plate_number: Optional[str]
    entry_time: datetime
    exit_time: Optional[datetime]
    elapsed_minutes: Optional[int]
    is_simulated: bool


class PaymentSettlement:
    def __init__(self, db: Session, notifier: NotificationService = None, clock=utcnow):
        self.db = db
        self.notifier = notifier or NotificationService(db, clock)
        self.clock = clock
        self.payments = Repository(db, Payment)
        self.occupancies = Repository(db, Occupancy)
        self.spaces = SpaceRegistry(db)

    async def get(self, payment_id: int) -> Payment:
        return self.payments.get_or_404(payment_id)

    async def list_pending(self, lot_id: int) -> list[PendingPaymentView]:
        rows = (
            self.db.query(Payment, Occupancy, Space, Vehicle)
            .join(Occupancy, Payment.occupancy_id == Occupancy.id)
            .join(Space, Occupancy.space_id == Space.id)
            .join(Vehicle, Occupancy.vehicle_id == Vehicle.id)
            .filter(Space.lot_id == lot_id, Payment.state == PaymentState.PENDING)
            .order_by(Payment.created_at)
            .all()
        )
        return [PendingPaymentView(p, o, s, v) for p, o, s, v in rows]

    async def settle(self, payment_id: int, operator_id: Optional[int] = None,
                     simulated: bool = False) -> SettlementResult:
        now = self.clock()
        try:
            with transaction(self.db):
                payment = self.payments.get_for_update(payment_id)
                if payment.state == PaymentState.COMPLETED:
                    logger.info(f"[PAY] Payment {payment_id} already settled, nothing to do")
                    return SettlementResult(payment, already_settled=True)

                occupancy = self.occupancies.get_for_update(payment.occupancy_id)
                if occupancy.state == OccupancyState.CLOSED:
                    raise InvalidState(f"Occupancy {occupancy.id} is already closed")

                receipt_type = payment.receipt_type or ReceiptType.RECEIPT
                series, number = next_receipt_number(self.db, receipt_type)
                rows = self.payments.update_where(payment_id, {"state": PaymentState.PENDING}, {
                    "state": PaymentState.COMPLETED,
                    "settled_at": now,
                    "settled_by": operator_id,
                    "is_simulated": simulated,
                    "receipt_type": receipt_type,
                    "receipt_series": series,
                    "receipt_number": number,
                })
                if rows != 1:
                    raise Conflict(f"Payment {payment_id} changed concurrently")

                close_stay(self.db, self.spaces, occupancy, now, {"computed_amount": payment.amount})
        except Conflict:
            # A concurrent settle may have won the race: report it as idempotent success
            self.db.expire_all()
            current = self.payments.get(payment_id)
            if current is not None and current.state == PaymentState.COMPLETED:
                return SettlementResult(current, already_settled=True)
            raise

        logger.info(f"[PAY] Payment {payment_id} settled by {operator_id}: {payment.amount} "
                    f"receipt {payment.receipt_code}{' (simulated)' if simulated else ''}")
        await self.notifier.notify(
            occupancy.user_id,
            f"Payment of {payment.amount} received, receipt {payment.receipt_code}. Have a good trip!",
            "payment",
        )
        return SettlementResult(payment)

    async def simulate(self, payment_id: int, operator_id: Optional[int] = None) -> SettlementResult:
        """Demo/test path: settle and flag the payment as simulated."""
        return await self.settle(payment_id, operator_id, simulated=True)

    async def settle_and_pay(self, occupancy_id: int, method_id: int, operator_id: Optional[int] = None,
                             received_amount: Optional[Decimal] = None,
                             receipt_type: str = ReceiptType.RECEIPT) -> CashSettlement:
        """
        Walk-up collection: quote the stay and settle it in one go.
        With a received (cash) amount the change is returned.
        """
        if method_id is None:
            raise InvalidInput("method_id is required")
        if receipt_type not in ReceiptType.ALL:
            raise InvalidInput(f"Unknown receipt type '{receipt_type}'")

        now = self.clock()
        with transaction(self.db):
            occupancy = self.occupancies.get_for_update(occupancy_id)
            if occupancy.state == OccupancyState.CLOSED or occupancy.exit_confirmed_at is not None:
                raise InvalidState(f"Occupancy {occupancy_id} already has its exit registered")

            quote = quote_stay(self.db, occupancy, now)
            received, change = None, None
            if received_amount is not None:
                received = Decimal(str(received_amount))
                if received < quote.amount:
                    raise InvalidInput(f"Received {received} is less than the amount due {quote.amount}")
                change = max(Decimal("0"), received - quote.amount)

            series, number = next_receipt_number(self.db, receipt_type)
            completed = {
                "amount": quote.amount,
                "tariff_id": quote.tariff.tariff_id,
                "state": PaymentState.COMPLETED,
                "method_id": method_id,
                "received_amount": received,
                "change_amount": change,
                "receipt_type": receipt_type,
                "receipt_series": series,
                "receipt_number": number,
                "settled_at": now,
                "settled_by": operator_id,
            }
            payment = pending_payment_for(self.db, occupancy_id)
            if payment is not None:
                rows = self.payments.update_where(payment.id, {"state": PaymentState.PENDING}, completed)
                if rows != 1:
                    raise Conflict(f"Payment {payment.id} changed concurrently")
            else:
                payment = self.payments.add(Payment(occupancy_id=occupancy_id, created_at=now, **completed))

            close_stay(self.db, self.spaces, occupancy, now, {
                "exit_requested_at": occupancy.exit_requested_at or now,
                "elapsed_minutes": quote.elapsed_minutes,
                "computed_amount": quote.amount,
                "tariff_id": quote.tariff.tariff_id,
            })

        logger.info(f"[PAY] Occupancy {occupancy_id} paid at exit: {quote.amount} "
                    f"receipt {payment.receipt_code} change={change}")
        await self.notifier.notify(
            occupancy.user_id,
            f"Payment of {quote.amount} received, receipt {payment.receipt_code}",
            "payment",
        )
        return CashSettlement(payment, change)

    async def get_receipt(self, payment_id: int) -> ReceiptView:
        payment = self.payments.get_or_404(payment_id)
        if payment.state != PaymentState.COMPLETED or payment.receipt_number is None:
            raise InvalidState(f"Payment {payment_id} has not been settled")

        occupancy = self.db.get(Occupancy, payment.occupancy_id)
        if occupancy is None:
            raise NotFound(f"Occupancy {payment.occupancy_id} not found")
        space = self.db.get(Space, occupancy.space_id)
        lot = self.db.get(ParkingLot, space.lot_id)
        vehicle = self.db.get(Vehicle, occupancy.vehicle_id)

        return ReceiptView(
            payment_id=payment.id,
            receipt_type=payment.receipt_type,
            series=payment.receipt_series,
            number=payment.receipt_number,
            code=payment.receipt_code,
            issued_at=payment.settled_at,
            amount=payment.amount,
            currency=settings.CURRENCY,
            lot_name=lot.name,
            lot_address=lot.address,
            space_label=space.label,
            plate_number=vehicle.plate_number if vehicle else None,
            entry_time=occupancy.entry_time,
            exit_time=occupancy.exit_confirmed_at,
            elapsed_minutes=occupancy.elapsed_minutes,
            is_simulated=payment.is_simulated,
        )
