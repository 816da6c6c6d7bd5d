"""Loads demo gyms and accounts into an empty database."""

import argparse
import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from gymflow.database.connection import SessionLocal
from gymflow.database.orm_models import Gym
from gymflow.database.repositories import UserRepository
from gymflow.models.domain import Role
from gymflow.services.auth_service import hash_password
from gymflow.services.membership_service import MembershipService
from gymflow.utils import generate_qr_code

logger = logging.getLogger(__name__)

DEMO_GYMS: List[Dict] = [
    {"name": "PowerGym Las Condes", "address": "Av. Apoquindo 4800, Las Condes", "max_capacity": 80, "chain": "PowerFit"},
    {"name": "FitZone Providencia", "address": "Av. Providencia 2100, Providencia", "max_capacity": 90, "chain": None},
    {"name": "SmartFit Vitacura", "address": "Av. Vitacura 5600, Vitacura", "max_capacity": 100, "chain": "SmartFit"},
    {"name": "SmartFit Ñuñoa", "address": "Av. Irarrázaval 3400, Ñuñoa", "max_capacity": 70, "chain": "SmartFit"},
    {"name": "SmartFit Maipú", "address": "Av. Pajaritos 2100, Maipú", "max_capacity": 60, "chain": "SmartFit"},
    {"name": "BodyTech Costanera", "address": "Av. Costanera 8700, Vitacura", "max_capacity": 85, "chain": None},
]

DEMO_USERS: List[Dict] = [
    {"email": "admin@gymflow.com", "name": "Admin User", "rut": "11111111-1", "role": Role.ADMIN.value},
    {"email": "staff@gymflow.com", "name": "Staff User", "rut": "22222222-2", "role": Role.GYM_STAFF.value},
    {"email": "socio@gymflow.com", "name": "Socio Demo", "rut": "12345678-5", "role": Role.USER.value},
]


def seed(db: Session, password: str) -> bool:
    """Returns False when the demo data is already present."""
    users = UserRepository(db)
    if users.get_by_email(DEMO_USERS[0]["email"]) is not None:
        return False

    gyms = []
    for g in DEMO_GYMS:
        gym = Gym(**g)
        db.add(gym)
        gyms.append(gym)
    db.flush()

    created = {}
    for u in DEMO_USERS:
        created[u["email"]] = users.create(
            email=u["email"],
            name=u["name"],
            password_hash=hash_password(password),
            rut=u["rut"],
            qr_code=generate_qr_code(),
            role=u["role"],
        )
    smartfit = next(g for g in gyms if g.chain == "SmartFit")
    MembershipService(db).stage_for_gym(created["socio@gymflow.com"].id, smartfit)
    db.commit()
    logger.info(f"seeded {len(gyms)} gyms and {len(created)} users")
    return True


def main() -> None:
    parser = argparse.ArgumentParser(prog="gymflow-seed")
    parser.add_argument("--password", type=str, default="password123")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        if seed(db, args.password):
            print("OK: datos de demo creados")
        else:
            print("OK: datos de demo ya existentes")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
