"""
Auth Service - registration, login and kiosk operator sessions.
"""

from typing import Any, Dict, Optional
import logging

import bcrypt
from sqlalchemy.orm import Session

from gymflow.database.orm_models import User
from gymflow.database.repositories import GymRepository, UserRepository
from gymflow.exceptions import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from gymflow.models.domain import UNIVERSAL_ACCESS_ROLES
from gymflow.security import tokens
from gymflow.services.base import BaseService
from gymflow.services.membership_service import MembershipService
from gymflow.utils import generate_qr_code, is_valid_rut_format, isoformat, normalize_rut

logger = logging.getLogger(__name__)

_QR_ATTEMPTS = 5


def hash_password(password: str) -> str:
    return bcrypt.hashpw(str(password).encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(str(password).encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "rut": user.rut,
        "qrCode": user.qr_code,
        "role": user.role,
        "createdAt": isoformat(user.created_at),
    }


class AuthService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.users = UserRepository(self.db)
        self.gyms = GymRepository(self.db)
        self.memberships = MembershipService(self.db)

    def _unique_qr_code(self) -> str:
        for _ in range(_QR_ATTEMPTS):
            code = generate_qr_code()
            if not self.users.qr_code_exists(code):
                return code
        raise Conflict("No se pudo generar un código QR único", error_code="QR_COLLISION")

    def register(
        self,
        email: str,
        name: str,
        password: str,
        rut: Optional[str] = None,
        gym_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Creates the user and, when gym_id names an existing gym, its membership."""
        r = None
        if rut:
            if not is_valid_rut_format(rut):
                raise InvalidInput(
                    "RUT inválido. Formato esperado: 12345678-9",
                    error_code="INVALID_RUT",
                    details={"rut": str(rut)},
                )
            r = normalize_rut(rut)

        with self._unit_of_work():
            if self.users.get_by_email(email) is not None:
                raise Conflict("El email ya está registrado", error_code="EMAIL_TAKEN")
            if r and self.users.get_by_rut(r) is not None:
                raise Conflict("El RUT ya está registrado", error_code="RUT_TAKEN")
            user = self.users.create(
                email=email,
                name=name,
                password_hash=hash_password(password),
                rut=r,
                qr_code=self._unique_qr_code(),
            )
            membership = None
            if gym_id:
                gym = self.gyms.get(gym_id)
                if gym is not None:
                    membership = self.memberships.stage_for_gym(user.id, gym)
                else:
                    logger.info(f"register: gym {gym_id} not found, no membership created")

        logger.info(f"user registered id={user.id} membership={'yes' if membership else 'no'}")
        return {
            "user": serialize_user(user),
            "token": tokens.issue_user_token(user.id, user.email, user.role),
            "membership": (
                {"id": membership.id, "type": membership.type, "endDate": membership.end_date.isoformat()}
                if membership is not None
                else None
            ),
        }

    def authenticate(self, email: str, password: str) -> User:
        with self._reading():
            user = self.users.get_by_email(email)
        if user is None or not check_password(password, user.password_hash):
            logger.info("login rejected")
            raise Unauthorized("Credenciales inválidas", error_code="INVALID_CREDENTIALS")
        return user

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self.authenticate(email, password)
        return {
            "user": serialize_user(user),
            "token": tokens.issue_user_token(user.id, user.email, user.role),
        }

    def issue_operator_session(self, user: User, gym_id: str) -> Dict[str, Any]:
        """Kiosk token bound to one gym; only staff and admins may open one."""
        if str(user.role) not in UNIVERSAL_ACCESS_ROLES:
            raise Forbidden("Solo el personal puede operar el torniquete", error_code="NOT_STAFF")
        with self._reading():
            gym = self.gyms.get(gym_id)
        if gym is None:
            raise NotFound("Gimnasio no encontrado", details={"gym_id": str(gym_id)})
        token = tokens.issue_operator_token(user.id, user.role, gym.id)
        logger.info(f"operator session opened user={user.id} gym={gym.id}")
        return {"token": token, "gymId": gym.id, "gymName": gym.name}

    def verify_token(self, token: str, typ: Optional[str] = None) -> Dict[str, Any]:
        claims = tokens.verify_token(token)
        if claims is None or (typ is not None and claims.get("typ") != typ):
            raise Unauthorized("Sesión inválida o expirada", error_code="INVALID_TOKEN")
        return claims

