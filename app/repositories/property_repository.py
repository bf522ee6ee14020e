# File: app/repositories/property_repository.py
"""
Repositories for properties and rooms.
"""

from typing import List, Sequence

from sqlalchemy import select

from app.db.models.property import Property, Room
from app.repositories.base_repository import BaseRepository


class PropertyRepository(BaseRepository[Property]):
    """Data access for properties."""

    model = Property


class RoomRepository(BaseRepository[Room]):
    """Data access for rooms."""

    model = Room

    def get_by_ids(self, room_ids: Sequence[int]) -> List[Room]:
        """
        Get the rooms with the given IDs, ordered by ID.

        Args:
            room_ids: Room IDs to load

        Returns:
            Rooms that exist; missing IDs are simply absent
        """
        if not room_ids:
            return []
        stmt = select(Room).where(Room.id.in_(list(room_ids))).order_by(Room.id)
        return list(self.session.execute(stmt).scalars().all())

    def list_for_property(self, property_id: int) -> List[Room]:
        stmt = select(Room).where(Room.property_id == property_id).order_by(Room.id)
        return list(self.session.execute(stmt).scalars().all())
