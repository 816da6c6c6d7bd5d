# GymFlow Database Package
from gymflow.database.connection import SessionLocal, engine
from gymflow.database.orm_models import Base, User, Gym, Membership, MembershipGym, CheckIn

__all__ = [
    "SessionLocal",
    "engine",
    "Base",
    "User",
    "Gym",
    "Membership",
    "MembershipGym",
    "CheckIn",
]
