from typing import List, Optional
from datetime import datetime

from sqlalchemy import select, func, update
from sqlalchemy.orm import selectinload

from gymflow.utils import now_utc_naive
from .base import BaseRepository
from ..orm_models import CheckIn


class CheckInRepository(BaseRepository):
    """Occupancy store. Capacity is always counted from rows, never cached."""

    def get(self, checkin_id: str) -> Optional[CheckIn]:
        return self.db.get(CheckIn, str(checkin_id))

    def find_by_event_id(self, event_id: str) -> Optional[CheckIn]:
        stmt = select(CheckIn).where(CheckIn.event_id == str(event_id)).limit(1)
        return self.db.scalars(stmt).first()

    def find_by_checkout_event_id(self, event_id: str) -> Optional[CheckIn]:
        stmt = select(CheckIn).where(CheckIn.checkout_event_id == str(event_id)).limit(1)
        return self.db.scalars(stmt).first()

    def count_active(self, gym_id: str) -> int:
        stmt = select(func.count(CheckIn.id)).where(
            CheckIn.gym_id == str(gym_id), CheckIn.checked_out.is_(None)
        )
        return int(self.db.scalar(stmt) or 0)

    def find_active(self, gym_id: str, user_id: str) -> Optional[CheckIn]:
        stmt = (
            select(CheckIn)
            .where(
                CheckIn.gym_id == str(gym_id),
                CheckIn.user_id == str(user_id),
                CheckIn.checked_out.is_(None),
            )
            .order_by(CheckIn.checked_in.desc())
            .limit(1)
        )
        return self.db.scalars(stmt).first()

    def list_for_user_at_gym(self, gym_id: str, user_id: str) -> List[CheckIn]:
        stmt = (
            select(CheckIn)
            .where(CheckIn.gym_id == str(gym_id), CheckIn.user_id == str(user_id))
            .order_by(CheckIn.checked_in.asc())
        )
        return list(self.db.scalars(stmt).all())

    def list_active_by_gym(self, gym_id: str) -> List[CheckIn]:
        stmt = (
            select(CheckIn)
            .options(selectinload(CheckIn.user))
            .where(CheckIn.gym_id == str(gym_id), CheckIn.checked_out.is_(None))
            .order_by(CheckIn.checked_in.desc())
        )
        return list(self.db.scalars(stmt).all())

    def list_active_by_user(self, user_id: str) -> List[CheckIn]:
        stmt = (
            select(CheckIn)
            .options(selectinload(CheckIn.gym))
            .where(CheckIn.user_id == str(user_id), CheckIn.checked_out.is_(None))
            .order_by(CheckIn.checked_in.desc())
        )
        return list(self.db.scalars(stmt).all())

    def list_in_range(self, gym_id: str, start: datetime, end: datetime) -> List[CheckIn]:
        """Rows whose session overlaps [start, end]."""
        stmt = (
            select(CheckIn)
            .options(selectinload(CheckIn.user))
            .where(
                CheckIn.gym_id == str(gym_id),
                CheckIn.checked_in <= end,
                (CheckIn.checked_out.is_(None)) | (CheckIn.checked_out >= start),
            )
            .order_by(CheckIn.checked_in.asc())
        )
        return list(self.db.scalars(stmt).all())

    def add(
        self,
        gym_id: str,
        user_id: Optional[str],
        *,
        event_id: Optional[str] = None,
        source: str = "api",
        checked_in: Optional[datetime] = None,
    ) -> CheckIn:
        """Stage a new active row and flush it; the caller owns the commit."""
        row = CheckIn(
            gym_id=str(gym_id),
            user_id=str(user_id) if user_id else None,
            checked_in=checked_in or now_utc_naive(),
            checked_out=None,
            event_id=str(event_id) if event_id else None,
            source=source,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def close_if_active(
        self,
        row: CheckIn,
        *,
        at: Optional[datetime] = None,
        checkout_event_id: Optional[str] = None,
    ) -> bool:
        """Conditional close. False when another writer closed the row first."""
        ts = at or now_utc_naive()
        if row.checked_in and ts < row.checked_in:
            ts = row.checked_in
        values = {"checked_out": ts}
        if checkout_event_id:
            values["checkout_event_id"] = str(checkout_event_id)
        result = self.db.execute(
            update(CheckIn)
            .where(CheckIn.id == row.id, CheckIn.checked_out.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(row)
        return int(result.rowcount or 0) == 1
