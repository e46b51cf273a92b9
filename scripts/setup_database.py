"""
Database initialization script.
Run this script to create the rifa system tables.
"""

import os
import sys
from dotenv import load_dotenv

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Load environment variables before the config module reads them
load_dotenv()

from rifa_system.config import DATABASE_URL
from rifa_system.database import create_rifa_engine, setup_rifa_database, verify_rifa_schema
from utils.logging_config import setup_logging


def main():
    logger = setup_logging('rifa_system')

    # Never log credentials
    host_part = DATABASE_URL.split('@')[-1] if '@' in DATABASE_URL else DATABASE_URL
    logger.info(f"Connecting to database: {host_part}")

    engine = create_rifa_engine(DATABASE_URL)

    if not setup_rifa_database(engine):
        logger.error("❌ Error setting up database")
        return 1

    status = verify_rifa_schema(engine)
    for table, exists in status.items():
        logger.info(f"  {'✓' if exists else '✗'} {table}")

    if not all(status.values()):
        logger.error("⚠️ Some tables are missing")
        return 1

    logger.info("✅ Database is ready for use!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
