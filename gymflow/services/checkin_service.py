"""
Check-in Service - the check-in/check-out state engine.

Per (gym, user) pair a session is OUTSIDE (no open row) or INSIDE (exactly
one open row). This service is the only writer of the checkins table:

- check_in / record_entry: strict OUTSIDE -> INSIDE, rejects a second open session.
- scan: credential path used by turnstiles and kiosks; a re-scan while
  INSIDE closes the session instead of being rejected.
- check_out / check_out_by_identity / record_exit: INSIDE -> OUTSIDE.

record_entry, record_exit and scan report whether the event_id had already
been applied, so callers broadcast each transition once.

Current capacity is always count(open rows) for the gym.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gymflow.config import checkin_max_retries
from gymflow.database.orm_models import CheckIn, Gym, User
from gymflow.database.repositories import CheckInRepository, GymRepository, UserRepository
from gymflow.exceptions import (
    AlreadyCheckedOut,
    CapacityExceeded,
    DuplicateSession,
    GymInactive,
    NotFound,
    StoreUnavailable,
)
from gymflow.models.domain import CapacitySnapshot, Credential, ScanAction, SessionState
from gymflow.services.access_service import AccessService
from gymflow.services.base import BaseService
from gymflow.utils import capacity_percentage, isoformat, normalize_rut

logger = logging.getLogger(__name__)


def fold_session_state(rows: Iterable[CheckIn]) -> SessionState:
    """Current state of one (gym, user) pair from its rows, oldest first."""
    state = SessionState.OUTSIDE
    for row in rows:
        state = SessionState.OUTSIDE if row.checked_out is not None else SessionState.INSIDE
    return state


def serialize_checkin(row: CheckIn, include_user: bool = True) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": row.id,
        "gymId": row.gym_id,
        "userId": row.user_id,
        "checkedIn": isoformat(row.checked_in),
        "checkedOut": isoformat(row.checked_out),
        "eventId": row.event_id,
        "source": row.source,
        "state": (
            SessionState.INSIDE.value if row.checked_out is None else SessionState.OUTSIDE.value
        ),
    }
    gym = row.gym
    if gym is not None:
        data["gym"] = {"id": gym.id, "name": gym.name, "maxCapacity": gym.max_capacity}
    if include_user:
        user = row.user
        data["user"] = (
            {"id": user.id, "name": user.name, "email": user.email, "rut": user.rut}
            if user is not None
            else None
        )
    return data


@dataclass
class ScanResult:
    action: ScanAction
    checkin: CheckIn
    user: Optional[User]
    replayed: bool = False

    @property
    def message(self) -> str:
        if self.action == ScanAction.CHECKOUT:
            return "Check-out realizado"
        return "Acceso concedido"

    def to_dict(self) -> Dict[str, Any]:
        u = self.user
        return {
            "success": True,
            "message": self.message,
            "action": self.action.value,
            "isCheckout": self.action == ScanAction.CHECKOUT,
            "replayed": self.replayed,
            "checkin": serialize_checkin(self.checkin),
            "user": {"id": u.id, "name": u.name, "rut": u.rut} if u is not None else None,
        }


class CheckinService(BaseService):
    """Check-in engine backed by the occupancy store."""

    def __init__(self, db: Session, access: Optional[AccessService] = None):
        super().__init__(db)
        self.checkins = CheckInRepository(self.db)
        self.gyms = GymRepository(self.db)
        self.users = UserRepository(self.db)
        self.access = access or AccessService(self.db)

    # ========== Reads ==========

    def _get_gym(self, gym_id: str) -> Gym:
        gym = self.gyms.get(gym_id)
        if gym is None:
            raise NotFound("Gimnasio no encontrado", details={"gym_id": str(gym_id)})
        return gym

    def session_state(self, gym_id: str, user_id: str) -> SessionState:
        with self._reading():
            return fold_session_state(self.checkins.list_for_user_at_gym(gym_id, user_id))

    def get_current_capacity(self, gym_id: str) -> CapacitySnapshot:
        with self._reading():
            gym = self._get_gym(gym_id)
            current = self.checkins.count_active(gym.id)
        maximum = int(gym.max_capacity or 0)
        return CapacitySnapshot(
            gym_id=gym.id,
            gym_name=gym.name,
            current=current,
            max=maximum,
            available=max(maximum - current, 0),
            percentage=capacity_percentage(current, maximum),
        )

    def get_active_sessions(self, gym_id: str) -> List[CheckIn]:
        with self._reading():
            self._get_gym(gym_id)
            return self.checkins.list_active_by_gym(gym_id)

    def get_active_session(self, gym_id: str, identifier: str) -> Optional[CheckIn]:
        """Open session at gym_id for an identifier that may be a user id, RUT or QR code."""
        ident = str(identifier or "").strip()
        if not ident:
            return None
        with self._reading():
            user = (
                self.users.get(ident)
                or self.users.get_by_rut(normalize_rut(ident) or ident)
                or self.users.get_by_qr_code(ident)
            )
            if user is None:
                return None
            return self.checkins.find_active(gym_id, user.id)

    def get_user_active_checkins(self, user_id: str) -> List[CheckIn]:
        with self._reading():
            return self.checkins.list_active_by_user(user_id)

    def list_checkins(self, gym_id: str, start: datetime, end: datetime) -> List[CheckIn]:
        """All rows for gym_id whose session overlaps [start, end]. Read-only."""
        with self._reading():
            return self.checkins.list_in_range(gym_id, start, end)

    # ========== Transitions ==========

    def find_entry_event(self, event_id: Optional[str]) -> Optional[CheckIn]:
        if not event_id:
            return None
        with self._reading():
            return self.checkins.find_by_event_id(event_id)

    def find_exit_event(self, event_id: Optional[str]) -> Optional[CheckIn]:
        """Row closed by the scan carrying event_id, if that scan was already applied."""
        if not event_id:
            return None
        with self._reading():
            return self.checkins.find_by_checkout_event_id(event_id)

    def _insert_checked(
        self, gym_id: str, user_id: Optional[str], event_id: Optional[str], source: str
    ) -> CheckIn:
        gym = self.gyms.get_for_update(gym_id)
        if gym is None:
            raise NotFound("Gimnasio no encontrado", details={"gym_id": str(gym_id)})
        if not gym.is_active:
            raise GymInactive(gym.id)
        current = self.checkins.count_active(gym.id)
        if current >= int(gym.max_capacity or 0):
            raise CapacityExceeded(gym.id, current, int(gym.max_capacity or 0))
        if user_id:
            active = self.checkins.find_active(gym.id, user_id)
            if active is not None:
                raise DuplicateSession(gym.id, user_id, active.id)
        return self.checkins.add(gym.id, user_id, event_id=event_id, source=source)

    def _admit(
        self, gym_id: str, user_id: Optional[str], event_id: Optional[str], source: str
    ) -> Tuple[CheckIn, bool]:
        """Inserts the entry row; returns (row, replayed)."""
        attempts = checkin_max_retries()
        for attempt in range(1, attempts + 1):
            try:
                with self._unit_of_work():
                    row = self._insert_checked(gym_id, user_id, event_id, source)
                logger.info(
                    f"check-in created id={row.id} gym={row.gym_id} user={row.user_id or '-'} source={source}"
                )
                return row, False
            except IntegrityError:
                # A concurrent writer committed first; re-evaluate against the new state.
                replay = self.find_entry_event(event_id)
                if replay is not None:
                    return replay, True
                if user_id:
                    with self._reading():
                        active = self.checkins.find_active(gym_id, user_id)
                    if active is not None:
                        raise DuplicateSession(str(gym_id), user_id, active.id)
                logger.warning(f"check-in conflict gym={gym_id} attempt={attempt}/{attempts}")
        raise StoreUnavailable("No se pudo registrar el check-in, intenta nuevamente")

    def _replayed(self, event_id: Optional[str]) -> Optional[ScanResult]:
        """Outcome already recorded for event_id, as entry or as exit."""
        entry = self.find_entry_event(event_id)
        if entry is not None:
            return ScanResult(ScanAction.CHECKIN, entry, entry.user, replayed=True)
        exit_ = self.find_exit_event(event_id)
        if exit_ is not None:
            return ScanResult(ScanAction.CHECKOUT, exit_, exit_.user, replayed=True)
        return None

    def record_entry(
        self,
        gym_id: str,
        credential: Optional[Credential] = None,
        event_id: Optional[str] = None,
        source: str = "api",
    ) -> ScanResult:
        """Strict check-in. Without a credential the row is anonymous."""
        replay = self.find_entry_event(event_id)
        if replay is not None:
            logger.info(f"check-in replay event_id={event_id} id={replay.id}")
            return ScanResult(ScanAction.CHECKIN, replay, replay.user, replayed=True)
        user = None
        if credential is not None and not credential.is_empty:
            user = self.access.resolve_user(credential)
        row, replayed = self._admit(gym_id, user.id if user else None, event_id, source)
        return ScanResult(ScanAction.CHECKIN, row, user, replayed=replayed)

    def check_in(
        self,
        gym_id: str,
        credential: Optional[Credential] = None,
        event_id: Optional[str] = None,
        source: str = "api",
    ) -> CheckIn:
        return self.record_entry(gym_id, credential, event_id=event_id, source=source).checkin

    def _close(self, row: CheckIn, checkout_event_id: Optional[str] = None) -> CheckIn:
        with self._unit_of_work():
            closed = self.checkins.close_if_active(row, checkout_event_id=checkout_event_id)
            if not closed:
                raise AlreadyCheckedOut(row.id)
        logger.info(f"check-out id={row.id} gym={row.gym_id} user={row.user_id or '-'}")
        return row

    def check_out(self, checkin_id: str) -> CheckIn:
        with self._reading():
            row = self.checkins.get(checkin_id)
        if row is None:
            raise NotFound("Check-in no encontrado", details={"checkin_id": str(checkin_id)})
        if row.checked_out is not None:
            raise AlreadyCheckedOut(row.id)
        return self._close(row)

    def record_exit(
        self, gym_id: str, credential: Credential, event_id: Optional[str] = None
    ) -> ScanResult:
        """Closes the user's open session at gym_id; a repeated event_id returns the closed row."""
        replay = self.find_exit_event(event_id)
        if replay is not None:
            return ScanResult(ScanAction.CHECKOUT, replay, replay.user, replayed=True)
        user = self.access.resolve_user(credential)
        not_inside = NotFound(
            "No hay un check-in activo para este usuario",
            details={"gym_id": str(gym_id), "user_id": user.id},
        )
        with self._reading():
            row = self.checkins.find_active(gym_id, user.id)
        if row is None:
            raise not_inside
        try:
            return ScanResult(ScanAction.CHECKOUT, self._close(row, checkout_event_id=event_id), user)
        except AlreadyCheckedOut:
            # closed concurrently, possibly by another copy of this event
            replay = self.find_exit_event(event_id)
            if replay is not None:
                return ScanResult(ScanAction.CHECKOUT, replay, replay.user, replayed=True)
            raise not_inside

    def check_out_by_identity(
        self, gym_id: str, credential: Credential, event_id: Optional[str] = None
    ) -> CheckIn:
        return self.record_exit(gym_id, credential, event_id=event_id).checkin

    def scan(
        self,
        gym_id: str,
        credential: Credential,
        event_id: Optional[str] = None,
        source: str = "scan",
    ) -> ScanResult:
        """Turnstile/kiosk scan: entry when OUTSIDE, exit when INSIDE."""
        replay = self._replayed(event_id)
        if replay is not None:
            return replay

        grant = self.access.resolve_access(gym_id, credential)
        user = grant.user
        with self._reading():
            self._get_gym(gym_id)
            active = self.checkins.find_active(gym_id, user.id)
        if active is not None:
            try:
                row = self._close(active, checkout_event_id=event_id)
                logger.info(f"toggle checkout gym={gym_id} user={user.id}")
                return ScanResult(ScanAction.CHECKOUT, row, user)
            except AlreadyCheckedOut:
                # closed concurrently: a copy of this event wins, otherwise the scan is a fresh entry
                replay = self._replayed(event_id)
                if replay is not None:
                    return replay
        row, replayed = self._admit(gym_id, user.id, event_id, source)
        return ScanResult(ScanAction.CHECKIN, row, user, replayed=replayed)
