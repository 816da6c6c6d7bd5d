from typing import Optional

from sqlalchemy import select

from .base import BaseRepository
from ..orm_models import User


class UserRepository(BaseRepository):

    def get(self, user_id: str) -> Optional[User]:
        return self.db.get(User, str(user_id))

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == str(email).strip().lower()).limit(1)
        return self.db.scalars(stmt).first()

    def get_by_rut(self, rut: str) -> Optional[User]:
        stmt = select(User).where(User.rut == str(rut)).limit(1)
        return self.db.scalars(stmt).first()

    def get_by_qr_code(self, qr_code: str) -> Optional[User]:
        stmt = select(User).where(User.qr_code == str(qr_code).strip()).limit(1)
        return self.db.scalars(stmt).first()

    def qr_code_exists(self, qr_code: str) -> bool:
        return self.get_by_qr_code(qr_code) is not None

    def create(
        self,
        *,
        email: str,
        name: str,
        password_hash: Optional[str],
        rut: Optional[str],
        qr_code: str,
        role: str = "USER",
    ) -> User:
        user = User(
            email=str(email).strip().lower(),
            name=str(name).strip(),
            password_hash=password_hash,
            rut=rut,
            qr_code=qr_code,
            role=role,
        )
        self.db.add(user)
        self.db.flush()
        return user
