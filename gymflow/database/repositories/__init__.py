from .base import BaseRepository
from .checkin_repository import CheckInRepository
from .gym_repository import GymRepository
from .membership_repository import MembershipRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CheckInRepository",
    "GymRepository",
    "MembershipRepository",
    "UserRepository",
]
