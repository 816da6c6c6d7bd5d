from typing import List, Optional, Iterable
from datetime import date

from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from .base import BaseRepository
from ..orm_models import Membership, MembershipGym


class MembershipRepository(BaseRepository):

    def get_by_user(self, user_id: str) -> Optional[Membership]:
        stmt = (
            select(Membership)
            .options(selectinload(Membership.gyms).selectinload(MembershipGym.gym))
            .where(Membership.user_id == str(user_id))
            .limit(1)
        )
        return self.db.scalars(stmt).first()

    def granted_gym_ids(self, membership_id: str) -> List[str]:
        stmt = (
            select(MembershipGym.gym_id)
            .where(MembershipGym.membership_id == str(membership_id))
            .order_by(MembershipGym.gym_id.asc())
        )
        return [str(g) for g in self.db.scalars(stmt).all()]

    def create(
        self,
        user_id: str,
        *,
        type_: str,
        status: str,
        start_date: date,
        end_date: date,
        gym_ids: Iterable[str],
    ) -> Membership:
        m = Membership(
            user_id=str(user_id),
            type=type_,
            status=status,
            start_date=start_date,
            end_date=end_date,
        )
        for gid in sorted(set(str(g) for g in gym_ids)):
            m.gyms.append(MembershipGym(gym_id=gid))
        self.db.add(m)
        self.db.flush()
        return m

    def count_active_for_gym(self, gym_id: str, today: date) -> List[tuple]:
        """(membership type, count) of active, non-expired memberships granting the gym."""
        stmt = (
            select(Membership.type, func.count(Membership.id))
            .join(MembershipGym, MembershipGym.membership_id == Membership.id)
            .where(
                MembershipGym.gym_id == str(gym_id),
                Membership.status == "ACTIVE",
                Membership.start_date <= today,
                Membership.end_date >= today,
            )
            .group_by(Membership.type)
        )
        return [(str(t), int(c)) for t, c in self.db.execute(stmt).all()]

    def types_for_users(self, user_ids: List[str]) -> dict:
        if not user_ids:
            return {}
        stmt = select(Membership.user_id, Membership.type).where(
            Membership.user_id.in_([str(u) for u in user_ids])
        )
        return {str(uid): str(t) for uid, t in self.db.execute(stmt).all()}
