# scripts/jobs/expire_reservations.py
"""
Run one reservation expiry sweep and exit. For cron, when the in-process
sweeper is turned off (SWEEPER_ENABLED=false).
Usage: python scripts/jobs/expire_reservations.py [--grace MINUTES]
"""

import argparse
import asyncio
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from parkflow.config import settings
from parkflow.database import SessionLocal
from parkflow.services.expiration_sweeper import sweep_expired_reservations


def main():
    parser = argparse.ArgumentParser(description="Cancel reservations with no check-in after the grace period")
    parser.add_argument("--grace", type=int, default=settings.RESERVATION_GRACE_MINUTES,
                        help="Grace period in minutes after the reservation start")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        cancelled = asyncio.run(sweep_expired_reservations(db, grace_minutes=args.grace))
    finally:
        db.close()

    print(f"🧹 {len(cancelled)} reservation(s) expired" + (f": {cancelled}" if cancelled else ""))


if __name__ == "__main__":
    main()
