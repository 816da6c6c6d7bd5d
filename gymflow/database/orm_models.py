import uuid
from typing import List, Optional
from datetime import datetime, date
from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
    func,
    text,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


# --- Usuarios ---


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    rut: Mapped[Optional[str]] = mapped_column(String(20), unique=True)
    qr_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="USER", server_default="USER"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    membership: Mapped[Optional["Membership"]] = relationship(
        "Membership", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    checkins: Mapped[List["CheckIn"]] = relationship("CheckIn", back_populates="user")

    __table_args__ = (
        Index("idx_users_role", "role"),
    )


# --- Gimnasios ---


class Gym(Base):
    __tablename__ = "gyms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    chain: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    checkins: Mapped[List["CheckIn"]] = relationship("CheckIn", back_populates="gym")

    __table_args__ = (
        CheckConstraint("max_capacity >= 0", name="ck_gyms_max_capacity"),
        Index("idx_gyms_chain", "chain"),
        Index("idx_gyms_is_active", "is_active"),
    )


# --- Membresías ---


class Membership(Base):
    __tablename__ = "memberships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False, server_default="BASIC")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="ACTIVE")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    user: Mapped["User"] = relationship("User", back_populates="membership")
    gyms: Mapped[List["MembershipGym"]] = relationship(
        "MembershipGym", back_populates="membership", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_memberships_status_end_date", "status", "end_date"),
    )


class MembershipGym(Base):
    __tablename__ = "membership_gyms"

    membership_id: Mapped[str] = mapped_column(
        ForeignKey("memberships.id", ondelete="CASCADE"), primary_key=True
    )
    gym_id: Mapped[str] = mapped_column(
        ForeignKey("gyms.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp()
    )

    membership: Mapped["Membership"] = relationship("Membership", back_populates="gyms")
    gym: Mapped["Gym"] = relationship("Gym")


# --- Check-ins ---


class CheckIn(Base):
    __tablename__ = "checkins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    gym_id: Mapped[str] = mapped_column(
        ForeignKey("gyms.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    checked_in: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    checked_out: Mapped[Optional[datetime]] = mapped_column(DateTime)
    event_id: Mapped[Optional[str]] = mapped_column(String(128), unique=True)
    # idempotency key of the scan that closed the session
    checkout_event_id: Mapped[Optional[str]] = mapped_column(String(128), unique=True)
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="api", server_default="api"
    )

    gym: Mapped["Gym"] = relationship("Gym", back_populates="checkins")
    user: Mapped[Optional["User"]] = relationship("User", back_populates="checkins")

    __table_args__ = (
        CheckConstraint(
            "checked_out IS NULL OR checked_out >= checked_in",
            name="ck_checkins_checkout_after_checkin",
        ),
        Index("idx_checkins_gym_checked_out", "gym_id", "checked_out"),
        Index("idx_checkins_gym_checked_in", "gym_id", "checked_in"),
        Index("idx_checkins_user_checked_out", "user_id", "checked_out"),
        Index(
            "uq_checkins_active_session",
            "gym_id",
            "user_id",
            unique=True,
            postgresql_where=text("checked_out IS NULL AND user_id IS NOT NULL"),
            sqlite_where=text("checked_out IS NULL AND user_id IS NOT NULL"),
        ),
    )
