# tests/test_payment_service.py
"""Unit tests for payment settlement, pay-at-exit and receipts."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from parkflow.database import transaction
from parkflow.errors import Conflict, InvalidInput, InvalidState, NotFound
from parkflow.models import (
    Notification, Occupancy, OccupancyState, Payment, PaymentState, ReceiptSeries,
    Reservation, ReservationState, Space, SpaceState,
)
from parkflow.services.occupancy_service import OccupancyManager
from parkflow.services.payment_service import PaymentSettlement
from parkflow.services.reservation_service import ReservationManager
from parkflow.services.receipt_service import next_receipt_number
from tests.factories import ALICE, BOB, OPERATOR_ID, T0


@pytest.fixture
def occupancies(db, notifier, clock):
    return OccupancyManager(db, notifier, clock)


@pytest.fixture
def reservations(db, notifier, clock):
    return ReservationManager(db, notifier, clock)


@pytest.fixture
def settlement(db, notifier, clock):
    return PaymentSettlement(db, notifier, clock)


async def park(occupancies, seed, user_id, label):
    return await occupancies.check_in(seed.spaces[label], seed.vehicles[user_id], user_id)


class TestSettle:
    @pytest.mark.asyncio
    async def test_full_lifecycle_on_space_seven(self, db, seed, clock, reservations, occupancies, settlement):
        reservation = await reservations.create(ALICE, seed.spaces["7"], seed.vehicles[ALICE], T0, T0 + timedelta(hours=2))
        occupancy = await occupancies.check_in(seed.spaces["7"], seed.vehicles[ALICE], ALICE, reservation.id)
        clock.advance(minutes=90)
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        assert quote.amount == Decimal("10.00")

        clock.advance(minutes=5)
        result = await settlement.settle(quote.payment.id, OPERATOR_ID)

        assert result.already_settled is False
        payment = db.get(Payment, quote.payment.id)
        assert payment.state == PaymentState.COMPLETED
        assert payment.amount == Decimal("10.00")
        assert payment.settled_by == OPERATOR_ID
        assert payment.settled_at == T0 + timedelta(minutes=95)
        stored = db.get(Occupancy, occupancy.id)
        assert stored.state == OccupancyState.CLOSED
        assert stored.exit_confirmed_at == T0 + timedelta(minutes=95)
        assert db.get(Space, seed.spaces["7"]).state == SpaceState.AVAILABLE
        assert db.get(Reservation, reservation.id).state == ReservationState.COMPLETED

    @pytest.mark.asyncio
    async def test_second_settle_is_a_no_op(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        clock.advance(minutes=30)
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        await settlement.settle(quote.payment.id, OPERATOR_ID)
        notifications = db.query(Notification).count()

        clock.advance(minutes=10)
        again = await settlement.settle(quote.payment.id, OPERATOR_ID + 1)

        assert again.already_settled is True
        assert again.payment.settled_by == OPERATOR_ID
        assert again.payment.receipt_number == 1
        assert db.query(Notification).count() == notifications
        assert db.get(ReceiptSeries, "receipt").last_number == 1

    @pytest.mark.asyncio
    async def test_unknown_payment(self, db, seed, settlement):
        with pytest.raises(NotFound):
            await settlement.settle(9999, OPERATOR_ID)

    @pytest.mark.asyncio
    async def test_pending_payment_on_closed_occupancy(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        db.get(Occupancy, occupancy.id).state = OccupancyState.CLOSED
        db.commit()

        with pytest.raises(InvalidState):
            await settlement.settle(quote.payment.id, OPERATOR_ID)
        assert db.get(Payment, quote.payment.id).state == PaymentState.PENDING
        assert db.get(ReceiptSeries, "receipt").last_number == 0

    @pytest.mark.asyncio
    async def test_failed_side_effect_rolls_back_settlement(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        # Space out of sync with the stay: freeing it must fail and undo the whole settlement
        db.get(Space, seed.spaces["2"]).state = SpaceState.AVAILABLE
        db.commit()

        with pytest.raises(Conflict):
            await settlement.settle(quote.payment.id, OPERATOR_ID)
        assert db.get(Payment, quote.payment.id).state == PaymentState.PENDING
        assert db.get(Occupancy, occupancy.id).state == OccupancyState.EXIT_REQUESTED
        assert db.get(ReceiptSeries, "receipt").last_number == 0

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_undo_settlement(self, db, seed, occupancies, clock):
        notifier = AsyncMock()
        notifier.notify.return_value = False
        occupancy = await OccupancyManager(db, notifier, clock).check_in(seed.spaces["2"], seed.vehicles[ALICE], ALICE)
        quote = await OccupancyManager(db, notifier, clock).request_exit(occupancy.id, ALICE)

        result = await PaymentSettlement(db, notifier, clock).settle(quote.payment.id, OPERATOR_ID)
        assert result.payment.state == PaymentState.COMPLETED
        notifier.notify.assert_awaited()

    @pytest.mark.asyncio
    async def test_simulate_flags_payment(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        result = await settlement.simulate(quote.payment.id, OPERATOR_ID)
        assert result.payment.is_simulated is True
        assert db.get(Occupancy, occupancy.id).state == OccupancyState.CLOSED


class TestSettleAndPay:
    @pytest.mark.asyncio
    async def test_cash_returns_change(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        clock.advance(minutes=61)
        result = await settlement.settle_and_pay(occupancy.id, method_id=1, operator_id=OPERATOR_ID,
                                                 received_amount=Decimal("20"))
        assert result.change == Decimal("10.00")
        assert result.payment.amount == Decimal("10.00")
        assert result.payment.received_amount == Decimal("20.00")
        assert result.payment.state == PaymentState.COMPLETED
        assert db.get(Occupancy, occupancy.id).state == OccupancyState.CLOSED
        assert db.get(Space, seed.spaces["2"]).state == SpaceState.AVAILABLE

    @pytest.mark.asyncio
    async def test_exact_amount_has_zero_change(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        clock.advance(minutes=61)
        result = await settlement.settle_and_pay(occupancy.id, method_id=1, received_amount="10")
        assert result.change == Decimal("0")

    @pytest.mark.asyncio
    async def test_card_payment_has_no_change(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        result = await settlement.settle_and_pay(occupancy.id, method_id=2)
        assert result.change is None
        assert result.payment.amount == Decimal("5.00")

    @pytest.mark.asyncio
    async def test_insufficient_cash(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        clock.advance(minutes=61)
        with pytest.raises(InvalidInput):
            await settlement.settle_and_pay(occupancy.id, method_id=1, received_amount=Decimal("5"))
        assert db.get(Occupancy, occupancy.id).state == OccupancyState.OPEN
        assert db.query(Payment).count() == 0

    @pytest.mark.asyncio
    async def test_reuses_pending_payment(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        clock.advance(minutes=70)
        result = await settlement.settle_and_pay(occupancy.id, method_id=1)
        assert result.payment.id == quote.payment.id
        assert result.payment.amount == Decimal("10.00")
        assert db.query(Payment).count() == 1

    @pytest.mark.asyncio
    async def test_already_closed(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        await settlement.settle_and_pay(occupancy.id, method_id=1)
        with pytest.raises(InvalidState):
            await settlement.settle_and_pay(occupancy.id, method_id=1)

    @pytest.mark.asyncio
    async def test_unknown_receipt_type(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        with pytest.raises(InvalidInput):
            await settlement.settle_and_pay(occupancy.id, method_id=1, receipt_type="ticket")


class TestReceipts:
    @pytest.mark.asyncio
    async def test_numbers_are_sequential_per_series(self, db, seed, occupancies, settlement):
        first = await settlement.settle_and_pay((await park(occupancies, seed, ALICE, "2")).id, method_id=1)
        second = await settlement.settle_and_pay((await park(occupancies, seed, BOB, "3")).id, method_id=1)
        assert first.payment.receipt_code == "B001-00000001"
        assert second.payment.receipt_code == "B001-00000002"

    @pytest.mark.asyncio
    async def test_rolled_back_settlement_gives_its_number_back(self, db, seed, occupancies, settlement):
        with pytest.raises(Conflict):
            with transaction(db):
                assert next_receipt_number(db) == ("B001", 1)
                raise Conflict("settlement aborted")
        with transaction(db):
            assert next_receipt_number(db) == ("B001", 1)
        assert db.get(ReceiptSeries, "receipt").last_number == 1

        occupancy = await park(occupancies, seed, ALICE, "2")
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        db.get(Space, seed.spaces["2"]).state = SpaceState.AVAILABLE
        db.commit()
        with pytest.raises(Conflict):
            await settlement.settle(quote.payment.id, OPERATOR_ID)

        paid = await settlement.settle_and_pay((await park(occupancies, seed, BOB, "3")).id, method_id=1)
        assert paid.payment.receipt_code == "B001-00000002"

    @pytest.mark.asyncio
    async def test_invoice_series(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        result = await settlement.settle_and_pay(occupancy.id, method_id=1, receipt_type="invoice")
        assert result.payment.receipt_code == "F001-00000001"

    @pytest.mark.asyncio
    async def test_receipt_view(self, db, seed, clock, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        clock.advance(minutes=61)
        result = await settlement.settle_and_pay(occupancy.id, method_id=1)

        receipt = await settlement.get_receipt(result.payment.id)
        assert receipt.code == "B001-00000001"
        assert receipt.amount == Decimal("10.00")
        assert receipt.currency == "PEN"
        assert receipt.lot_name == "Central"
        assert receipt.space_label == "2"
        assert receipt.plate_number == "ABC-123"
        assert receipt.elapsed_minutes == 61
        assert receipt.exit_time == T0 + timedelta(minutes=61)

    @pytest.mark.asyncio
    async def test_unsettled_payment_has_no_receipt(self, db, seed, occupancies, settlement):
        occupancy = await park(occupancies, seed, ALICE, "2")
        quote = await occupancies.request_exit(occupancy.id, ALICE)
        with pytest.raises(InvalidState):
            await settlement.get_receipt(quote.payment.id)


class TestPendingQueue:
    @pytest.mark.asyncio
    async def test_lists_pending_for_lot(self, db, seed, clock, occupancies, settlement):
        a = await park(occupancies, seed, ALICE, "2")
        b = await park(occupancies, seed, BOB, "3")
        await occupancies.request_exit(a.id, ALICE)
        clock.advance(minutes=1)
        quote_b = await occupancies.request_exit(b.id, BOB)
        await settlement.settle(quote_b.payment.id, OPERATOR_ID)

        pending = await settlement.list_pending(seed.lot_id)
        assert [v.occupancy.id for v in pending] == [a.id]
        assert pending[0].vehicle.plate_number == "ABC-123"
        assert await settlement.list_pending(seed.lot_id + 1) == []
