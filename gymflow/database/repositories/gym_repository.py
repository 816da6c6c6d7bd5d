from typing import List, Optional

from sqlalchemy import select

from .base import BaseRepository
from ..orm_models import Gym


class GymRepository(BaseRepository):

    def get(self, gym_id: str) -> Optional[Gym]:
        return self.db.get(Gym, str(gym_id))

    def get_for_update(self, gym_id: str) -> Optional[Gym]:
        """Row-locks the gym so capacity check and insert serialise per gym.

        SQLite has no row locks; its database-level write lock covers the same window.
        """
        stmt = select(Gym).where(Gym.id == str(gym_id))
        if self.dialect_name == "postgresql":
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt).first()

    def list_active(self) -> List[Gym]:
        stmt = select(Gym).where(Gym.is_active.is_(True)).order_by(Gym.name.asc())
        return list(self.db.scalars(stmt).all())

    def list_active_in_chain(self, chain: str) -> List[Gym]:
        stmt = (
            select(Gym)
            .where(Gym.chain == str(chain), Gym.is_active.is_(True))
            .order_by(Gym.name.asc())
        )
        return list(self.db.scalars(stmt).all())

    def list_by_ids(self, gym_ids: List[str]) -> List[Gym]:
        if not gym_ids:
            return []
        stmt = select(Gym).where(Gym.id.in_([str(g) for g in gym_ids])).order_by(Gym.name.asc())
        return list(self.db.scalars(stmt).all())
