"""
Database initialization script for CareRoute.

Creates the records table and seeds a handful of demo providers so the
ranking and capacity endpoints have something to work with.
"""
import asyncio
import sys
import logging
from pathlib import Path

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_PROVIDERS = [
    {
        "provider_id": "prov-city-hospital",
        "type": "hospital",
        "name": "City General Hospital",
        "is_active": True,
        "location": {"state": "Karnataka", "district": "Bengaluru", "coordinates": {"lat": 12.9716, "lng": 77.5946}},
        "capabilities": {"specialties": ["cardiology", "emergency"], "languages": ["English", "Kannada"]},
        "capacity": {"total_beds": 200, "available_beds": 40, "daily_patient_capacity": 500, "current_load": 62},
        "quality_metrics": {"rating": 4.5, "patient_reviews": 1200, "success_rate": 94, "average_wait_time": 30},
        "cost_structure": {"consultation_fee": 800, "insurance_accepted": ["star", "icici"]},
    },
    {
        "provider_id": "prov-lakeside-clinic",
        "type": "clinic",
        "name": "Lakeside Family Clinic",
        "is_active": True,
        "location": {"state": "Karnataka", "district": "Bengaluru", "coordinates": {"lat": 12.9352, "lng": 77.6245}},
        "capabilities": {"specialties": ["general medicine", "pediatrics"], "languages": ["English", "Hindi"]},
        "capacity": {"daily_patient_capacity": 80, "current_load": 35},
        "quality_metrics": {"rating": 4.1, "patient_reviews": 310, "success_rate": 90, "average_wait_time": 15},
        "cost_structure": {"consultation_fee": 300, "insurance_accepted": ["star"]},
    },
    {
        "provider_id": "prov-heart-specialists",
        "type": "specialist",
        "name": "Heart Care Specialists",
        "is_active": True,
        "location": {"state": "Karnataka", "district": "Mysuru", "coordinates": {"lat": 12.2958, "lng": 76.6394}},
        "capabilities": {"specialties": ["cardiology"], "languages": ["English"]},
        "capacity": {"daily_patient_capacity": 40, "current_load": 91},
        "quality_metrics": {"rating": 4.8, "patient_reviews": 540, "success_rate": 97, "average_wait_time": 45},
        "cost_structure": {"consultation_fee": 1500, "insurance_accepted": ["icici"]},
    },
]


async def seed_providers(storage) -> int:
    """Store the demo providers, replacing any earlier copies."""
    from careroute.core.config import Config

    for provider in DEMO_PROVIDERS:
        await storage.put(Config.PROVIDER_TABLE, provider["provider_id"], provider)
    return len(DEMO_PROVIDERS)


def setup_database():
    """Initialize database with schema and demo data."""
    print("\nInitializing CareRoute Database...")
    print("=" * 60)

    try:
        from careroute.core.config import Config
        from careroute.db.sql_storage import SQLStorage

        db_url = Config.DATABASE_URL
        print(f"Database URL: {db_url}")

        storage = SQLStorage(db_url)
        print("Database schema created successfully!")

        count = asyncio.run(seed_providers(storage))
        print(f"Seeded {count} demo providers")

        # Show database info
        if db_url.startswith('sqlite'):
            db_file = db_url.replace('sqlite:///', '')
            db_path = Path(db_file).resolve()
            print(f"\nSQLite Database: {db_path}")
            if db_path.exists():
                size = db_path.stat().st_size
                print(f"   Size: {size:,} bytes")

        print("\nDatabase ready!")
        print("=" * 60)

        return True

    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        return False


if __name__ == "__main__":
    success = setup_database()
    sys.exit(0 if success else 1)
