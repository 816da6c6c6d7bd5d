from typing import Any, Dict, List
import logging

from sqlalchemy.orm import Session

from gymflow.database.orm_models import Gym
from gymflow.database.repositories import CheckInRepository, GymRepository, MembershipRepository, UserRepository
from gymflow.exceptions import NotFound
from gymflow.models.domain import Role
from gymflow.services.base import BaseService
from gymflow.utils import capacity_percentage, isoformat

logger = logging.getLogger(__name__)


class GymService(BaseService):
    """Gym reads with capacity derived from open check-ins."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.gyms = GymRepository(self.db)
        self.checkins = CheckInRepository(self.db)
        self.memberships = MembershipRepository(self.db)
        self.users = UserRepository(self.db)

    def _with_capacity(self, gym: Gym) -> Dict[str, Any]:
        current = self.checkins.count_active(gym.id)
        maximum = int(gym.max_capacity or 0)
        return {
            "id": gym.id,
            "name": gym.name,
            "address": gym.address,
            "chain": gym.chain,
            "maxCapacity": maximum,
            "isActive": bool(gym.is_active),
            "createdAt": isoformat(gym.created_at),
            "currentCapacity": current,
            "availableSpots": max(maximum - current, 0),
            "occupancyPercentage": capacity_percentage(current, maximum),
        }

    def list_gyms(self) -> List[Dict[str, Any]]:
        with self._reading():
            return [self._with_capacity(g) for g in self.gyms.list_active()]

    def get_gym(self, gym_id: str) -> Dict[str, Any]:
        with self._reading():
            gym = self.gyms.get(gym_id)
            if gym is None:
                raise NotFound("Gimnasio no encontrado", details={"gym_id": str(gym_id)})
            return self._with_capacity(gym)

    def gyms_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        with self._reading():
            user = self.users.get(user_id)
            if user is None:
                raise NotFound("Usuario no encontrado", details={"user_id": str(user_id)})
            if str(user.role) == Role.ADMIN.value:
                return [self._with_capacity(g) for g in self.gyms.list_active()]
            membership = self.memberships.get_by_user(user.id)
            if membership is None:
                raise NotFound("El usuario no tiene membresía", details={"user_id": user.id})
            granted = self.gyms.list_by_ids([mg.gym_id for mg in membership.gyms])
            return [self._with_capacity(g) for g in granted if g.is_active]
