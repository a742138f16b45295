# scripts/setup/init_db.py
"""
Initialize database: creates all tables and the receipt counters.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--demo]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from decimal import Decimal
from sqlalchemy import inspect, text
from parkflow.database import SessionLocal, create_tables, engine
from parkflow.config import settings
from parkflow.models import ParkingLot, Space, Tariff, TariffType
from parkflow.services.receipt_service import seed_receipt_series
from parkflow.utils.clock import utcnow


def seed_demo_lot(db, spaces: int = 10):
    """One lot with numbered spaces and an hourly + day tariff, for local testing."""
    if db.query(ParkingLot).first() is not None:
        print("ℹ️  Lots already exist, demo data skipped")
        return
    lot = ParkingLot(name="Demo Lot", address="Av. Principal 123", hourly_rate=settings.DEFAULT_HOURLY_RATE)
    db.add(lot)
    db.flush()
    for n in range(1, spaces + 1):
        db.add(Space(lot_id=lot.id, label=str(n)))
    db.add(Tariff(lot_id=lot.id, tariff_type=TariffType.HOURLY, amount=Decimal("5"), created_at=utcnow()))
    db.add(Tariff(lot_id=lot.id, tariff_type=TariffType.DAY, amount=Decimal("20"), created_at=utcnow()))
    db.commit()
    print(f"✅ Demo lot {lot.id} created with {spaces} spaces")


def main():
    parser = argparse.ArgumentParser(description="Create ParkFlow tables")
    parser.add_argument("--demo", action="store_true", help="Also create a demo lot with spaces and tariffs")
    args = parser.parse_args()

    print("🗄️  ParkFlow DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    db = SessionLocal()
    try:
        seed_receipt_series(db)
        print(f"✅ Receipt series ready: {settings.RECEIPT_SERIES}")
        if args.demo:
            seed_demo_lot(db)
    finally:
        db.close()

    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn parkflow.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
