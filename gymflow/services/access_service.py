"""
Access Service

Resolves a presented credential (user id, RUT or QR code) to a user and
decides whether that user may enter a given gym. Read-only: nothing here
writes to the store, so it always runs before any check-in mutation.
"""

from datetime import date
from typing import Optional
import logging

from sqlalchemy.orm import Session

from gymflow.database.orm_models import User, Membership
from gymflow.database.repositories import MembershipRepository, UserRepository
from gymflow.exceptions import Forbidden, NotFound
from gymflow.models.domain import (
    AccessGrant,
    Credential,
    MembershipStatus,
    UNIVERSAL_ACCESS_ROLES,
)
from gymflow.services.base import BaseService

logger = logging.getLogger(__name__)


class AccessService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.users = UserRepository(self.db)
        self.memberships = MembershipRepository(self.db)

    def resolve_user(self, credential: Credential) -> User:
        with self._reading():
            user: Optional[User] = None
            if credential.user_id:
                user = self.users.get(credential.user_id)
            elif credential.rut:
                user = self.users.get_by_rut(credential.rut)
            elif credential.qr_code:
                user = self.users.get_by_qr_code(credential.qr_code)
        if user is None:
            raise NotFound(
                "Usuario no encontrado",
                details={"credential": credential.describe()},
            )
        return user

    def membership_denial(
        self, membership: Optional[Membership], gym_id: str, today: Optional[date] = None
    ) -> Optional[str]:
        """Reason the membership does not cover gym_id, or None when it does."""
        today = today or date.today()
        if membership is None or str(membership.status) != MembershipStatus.ACTIVE.value:
            return "No tienes membresía activa"
        if membership.start_date and membership.start_date > today:
            return "Tu membresía aún no está vigente"
        if membership.end_date and membership.end_date < today:
            return "Tu membresía está vencida"
        granted = {str(mg.gym_id) for mg in (membership.gyms or [])}
        if str(gym_id) not in granted:
            return "Tu membresía no incluye acceso a este gimnasio"
        return None

    def resolve_access(self, gym_id: str, credential: Credential) -> AccessGrant:
        user = self.resolve_user(credential)
        if str(user.role) in UNIVERSAL_ACCESS_ROLES:
            return AccessGrant(user=user, granted=True)

        with self._reading():
            membership = self.memberships.get_by_user(user.id)
        reason = self.membership_denial(membership, gym_id)
        if reason:
            logger.info(f"Access denied gym={gym_id} user={user.id}: {reason}")
            raise Forbidden(reason, details={"gym_id": str(gym_id), "user_id": user.id})
        return AccessGrant(user=user, granted=True)

    def has_gym_access(self, user_id: str, gym_id: str) -> bool:
        with self._reading():
            user = self.users.get(user_id)
            if user is None:
                return False
            if str(user.role) in UNIVERSAL_ACCESS_ROLES:
                return True
            membership = self.memberships.get_by_user(user.id)
        return self.membership_denial(membership, gym_id) is None
