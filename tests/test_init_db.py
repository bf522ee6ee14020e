# tests/test_init_db.py
from app.db.init_db import seed_demo_property
from app.db.models import Property


def test_seed_demo_property_is_idempotent(db):
    first = seed_demo_property(db)
    second = seed_demo_property(db)

    assert first.id == second.id
    assert sorted(room.name for room in first.rooms) == ["Cabin", "Garden Suite", "Loft"]
    assert db.query(Property).filter(Property.name == "Demo Lodge").count() == 1
