from datetime import date, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from gymflow.config import membership_days
from gymflow.database.orm_models import Gym, Membership
from gymflow.database.repositories import GymRepository, MembershipRepository, UserRepository
from gymflow.exceptions import Conflict, NotFound
from gymflow.models.domain import MembershipStatus
from gymflow.services.base import BaseService
from gymflow.utils import isoformat, normalize_rut

logger = logging.getLogger(__name__)


def serialize_membership(m: Membership) -> Dict[str, Any]:
    return {
        "id": m.id,
        "userId": m.user_id,
        "type": m.type,
        "status": m.status,
        "startDate": m.start_date.isoformat() if m.start_date else None,
        "endDate": m.end_date.isoformat() if m.end_date else None,
        "createdAt": isoformat(m.created_at),
        "gyms": [
            {"gymId": mg.gym_id, "name": mg.gym.name if mg.gym is not None else None}
            for mg in (m.gyms or [])
        ],
    }


class MembershipService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.memberships = MembershipRepository(self.db)
        self.gyms = GymRepository(self.db)
        self.users = UserRepository(self.db)

    def get_user_membership(self, user_id: str) -> Optional[Membership]:
        with self._reading():
            return self.memberships.get_by_user(user_id)

    def granted_gym_ids(self, user_id: str) -> List[str]:
        m = self.get_user_membership(user_id)
        if m is None:
            return []
        return sorted(str(mg.gym_id) for mg in m.gyms)

    def chain_snapshot(self, gym: Gym) -> List[Gym]:
        """Gyms granted by a membership bought at `gym`, as of now."""
        if gym.chain:
            chain_gyms = self.gyms.list_active_in_chain(gym.chain)
            if all(g.id != gym.id for g in chain_gyms):
                chain_gyms.append(gym)
            return chain_gyms
        return [gym]

    def stage_for_gym(
        self, user_id: str, gym: Gym, *, days: Optional[int] = None, today: Optional[date] = None
    ) -> Membership:
        """Adds the membership to the session without committing."""
        if self.memberships.get_by_user(user_id) is not None:
            raise Conflict(
                "El usuario ya tiene una membresía",
                error_code="MEMBERSHIP_EXISTS",
                details={"user_id": str(user_id)},
            )
        start = today or date.today()
        length = days if days is not None else membership_days()
        granted = self.chain_snapshot(gym)
        m = self.memberships.create(
            user_id,
            type_=gym.chain.upper() if gym.chain else "BASIC",
            status=MembershipStatus.ACTIVE.value,
            start_date=start,
            end_date=start + timedelta(days=int(length)),
            gym_ids=[g.id for g in granted],
        )
        logger.info(
            f"membership created user={user_id} type={m.type} gyms={len(granted)} chain={gym.chain or '-'}"
        )
        return m

    def create_for_gym(self, user_id: str, gym_id: str, *, days: Optional[int] = None) -> Membership:
        with self._unit_of_work():
            if self.users.get(user_id) is None:
                raise NotFound("Usuario no encontrado", details={"user_id": str(user_id)})
            gym = self.gyms.get(gym_id)
            if gym is None:
                raise NotFound("Gimnasio no encontrado", details={"gym_id": str(gym_id)})
            m = self.stage_for_gym(user_id, gym, days=days)
        return m

    def validate_rut(self, rut: str, gym_id: str) -> Dict[str, Any]:
        """Pre-registration check: is the RUT free and does the gym exist."""
        r = normalize_rut(rut)
        with self._reading():
            existing = self.users.get_by_rut(r) if r else None
            if existing is not None:
                return {
                    "exists": True,
                    "hasAccount": True,
                    "message": "Este RUT ya tiene una cuenta registrada",
                }
            gym = self.gyms.get(gym_id)
        if gym is None:
            return {
                "exists": False,
                "hasAccount": False,
                "gymFound": False,
                "message": "Gimnasio no encontrado",
            }
        return {
            "exists": False,
            "hasAccount": False,
            "gymFound": True,
            "gymName": gym.name,
            "gymChain": gym.chain,
            "message": "RUT válido para registro",
        }
