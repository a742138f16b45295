# parkflow/services/expiration_sweeper.py
"""
Reservation expiry.

A reservation whose start time passed more than the grace period ago with no
check-in is cancelled and its space released. Reservations with an
occupancy are never touched, however late. The cancel is conditioned on the
reservation state still being the one we read, so a concurrent check-in or
user cancellation always wins over the sweeper.

Runs every SWEEPER_INTERVAL_SECONDS on the app's event loop (started from
main.py), or once from scripts/jobs/expire_reservations.py.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import exists
from sqlalchemy.orm import Session
from parkflow.config import settings
from parkflow.database import SessionLocal, transaction
from parkflow.errors import ParkingError
from parkflow.models.occupancy import Occupancy
from parkflow.models.reservation import Reservation, ReservationState
from parkflow.models.space import Space
from parkflow.services.notification_service import NotificationService
from parkflow.services.space_registry import SpaceRegistry
from parkflow.utils.clock import utcnow
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)


async def sweep_expired_reservations(db: Session, notifier: NotificationService = None,
                                     now: Optional[datetime] = None,
                                     grace_minutes: Optional[int] = None) -> list[int]:
    """Cancel every abandoned reservation. Returns the ids that were cancelled."""
    now = now or utcnow()
    grace = settings.RESERVATION_GRACE_MINUTES if grace_minutes is None else grace_minutes
    cutoff = now - timedelta(minutes=grace)
    notifier = notifier or NotificationService(db)
    spaces = SpaceRegistry(db)

    checked_in = exists().where(Occupancy.reservation_id == Reservation.id)
    candidates = (
        db.query(Reservation)
        .filter(
            Reservation.state.in_(ReservationState.BLOCKING),
            Reservation.start_time < cutoff,
            ~checked_in,
        )
        .order_by(Reservation.start_time)
        .all()
    )
    if not candidates:
        logger.debug("[SWEEP] No expired reservations")
        return []

    logger.info(f"[SWEEP] {len(candidates)} reservation(s) past the {grace}-min grace period")
    cancelled = []
    for reservation in candidates:
        reservation_id, seen_state = reservation.id, reservation.state
        try:
            with transaction(db):
                rows = (
                    db.query(Reservation)
                    .filter(
                        Reservation.id == reservation_id,
                        Reservation.state == seen_state,
                        ~checked_in,
                    )
                    .update({
                        Reservation.state: ReservationState.CANCELLED,
                        Reservation.cancelled_at: now,
                        Reservation.cancel_reason: "expired",
                    }, synchronize_session=False)
                )
                if rows == 0:
                    logger.info(f"[SWEEP] Reservation {reservation_id} changed meanwhile, skipped")
                    continue
                spaces.release_hold(reservation.space_id)
        except ParkingError as e:
            logger.warning(f"[SWEEP] Could not expire reservation {reservation_id}: {e}")
            continue

        cancelled.append(reservation_id)
        logger.info(f"[SWEEP] Reservation {reservation_id} expired, space {reservation.space_id} released")

        space = db.get(Space, reservation.space_id)
        await notifier.notify(
            reservation.user_id,
            f"Your reservation for space {space.label if space else reservation.space_id} expired: "
            f"no check-in within {grace} minutes of the start time",
            "reservation",
        )
    return cancelled


async def run_expiration_sweeper(interval_seconds: Optional[int] = None):
    """
    Sweep forever on a fixed interval with a fresh DB session per run.
    Called once at backend startup.
    """
    interval = interval_seconds or settings.SWEEPER_INTERVAL_SECONDS
    logger.info(f"🧹 Reservation sweeper started (every {interval}s, grace {settings.RESERVATION_GRACE_MINUTES} min)")

    while True:
        db = SessionLocal()
        try:
            await sweep_expired_reservations(db)
        except Exception as e:
            logger.error(f"[SWEEP] Sweep run failed: {e}", exc_info=True)
        finally:
            db.close()
        await asyncio.sleep(interval)
