# File: app/db/init_db.py
"""
Database initialization script.

This script creates the tables and, when asked, a demo property with
rooms so the API can be exercised against a fresh database.
"""

import argparse
import logging

from sqlalchemy.orm import Session

from app.db.models import Property, Room
from app.db.session import SessionLocal, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_demo_property(db: Session) -> Property:
    """
    Create a demo property with three rooms unless one already exists.

    Args:
        db: SQLAlchemy database session
    """
    existing = db.query(Property).filter(Property.name == "Demo Lodge").first()
    if existing:
        logger.info(f"Demo property already exists: {existing.id}")
        return existing

    prop = Property(name="Demo Lodge", owner_id=1)
    db.add(prop)
    db.flush()
    for name in ("Garden Suite", "Loft", "Cabin"):
        db.add(Room(property_id=prop.id, name=name))
    db.commit()
    logger.info(f"Demo property created with ID: {prop.id}")
    return prop


def main() -> None:
    """Run database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the LodgePay database")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    parser.add_argument("--seed", action="store_true", help="Create a demo property")
    args = parser.parse_args()

    logger.info("Creating database schema")
    init_db(reset=args.reset)
    if args.seed:
        db = SessionLocal()
        try:
            seed_demo_property(db)
        finally:
            db.close()
    logger.info("Database initialization finished")


if __name__ == "__main__":
    main()
