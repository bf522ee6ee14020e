# tests/conftest.py
from typing import List

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.events import EventBus
from app.core.security import Actor
from app.db.models import Property, Room
from app.db.session import build_engine, init_db

GUEST = Actor(id=42, role="guest")
OTHER_GUEST = Actor(id=43, role="guest")
MANAGER = Actor(id=7, role="property_manager")
ADMIN = Actor(id=1, role="admin")


@pytest.fixture()
def engine():
    # One shared in-memory connection so every session sees the same data
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def event_bus():
    return EventBus()


@pytest.fixture()
def lodge(db) -> Property:
    prop = Property(name="Lakeside Lodge", owner_id=1)
    db.add(prop)
    db.flush()
    db.add_all(
        [Room(property_id=prop.id, name=name) for name in ("Garden Suite", "Loft", "Cabin")]
    )
    db.commit()
    return prop


@pytest.fixture()
def rooms(db, lodge) -> List[Room]:
    return sorted(lodge.rooms, key=lambda room: room.id)


@pytest.fixture()
def other_lodge(db) -> Property:
    prop = Property(name="Hilltop Inn", owner_id=2)
    db.add(prop)
    db.flush()
    db.add(Room(property_id=prop.id, name="Attic"))
    db.commit()
    return prop


@pytest.fixture()
def guest() -> Actor:
    return GUEST


@pytest.fixture()
def other_guest() -> Actor:
    return OTHER_GUEST


@pytest.fixture()
def manager() -> Actor:
    return MANAGER


@pytest.fixture()
def admin() -> Actor:
    return ADMIN
