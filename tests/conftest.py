from datetime import date, timedelta
from itertools import count
from typing import Iterable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gymflow.database.orm_models import Base, Gym, Membership, MembershipGym, User
from gymflow.utils import generate_qr_code

_seq = count(1)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gym_factory(db):
    def _make(
        name: Optional[str] = None,
        max_capacity: int = 10,
        chain: Optional[str] = None,
        is_active: bool = True,
    ) -> Gym:
        gym = Gym(
            name=name or f"Gym {next(_seq)}",
            address="Av. Test 123",
            max_capacity=max_capacity,
            chain=chain,
            is_active=is_active,
        )
        db.add(gym)
        db.commit()
        return gym

    return _make


@pytest.fixture
def user_factory(db):
    def _make(
        name: str = "Socio Test",
        role: str = "USER",
        rut: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> User:
        n = next(_seq)
        user = User(
            email=email or f"user{n}@test.cl",
            name=name,
            password_hash=password_hash,
            rut=rut,
            qr_code=generate_qr_code(),
            role=role,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def membership_factory(db):
    def _make(
        user: User,
        gyms: Iterable[Gym],
        status: str = "ACTIVE",
        start: Optional[date] = None,
        end: Optional[date] = None,
        type_: str = "BASIC",
    ) -> Membership:
        today = date.today()
        m = Membership(
            user_id=user.id,
            type=type_,
            status=status,
            start_date=start or today - timedelta(days=1),
            end_date=end or today + timedelta(days=30),
        )
        for g in gyms:
            m.gyms.append(MembershipGym(gym_id=g.id))
        db.add(m)
        db.commit()
        return m

    return _make


@pytest.fixture
def member(user_factory, membership_factory, gym_factory):
    """A USER with an active membership to one gym of capacity 10."""
    gym = gym_factory(max_capacity=10)
    user = user_factory(rut="12345678-5")
    membership_factory(user, [gym])
    return user, gym
