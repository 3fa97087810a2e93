from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, String, Text


class Base(DeclarativeBase):
    pass


class ReservationStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class Restaurant(Base):
    __tablename__ = "restaurants"
    __table_args__ = (UniqueConstraint("slug", name="uq_restaurants_slug"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    settings: Mapped[Optional["ReservationSettings"]] = relationship(back_populates="restaurant")
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="restaurant")


class ReservationSettings(Base):
    __tablename__ = "reservation_settings"
    __table_args__ = (
        UniqueConstraint("restaurant_id", name="uq_reservation_settings_restaurant"),
        CheckConstraint("time_slot_interval IN (15, 30, 60)", name="chk_settings_interval"),
        CheckConstraint("min_party_size >= 1", name="chk_settings_min_party"),
        CheckConstraint("min_party_size <= max_party_size", name="chk_settings_party_range"),
        CheckConstraint("overbooking_percentage >= 0", name="chk_settings_overbooking"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    # {"sunday": {"open": "17:00", "close": "22:00", "closed": false}, ...}
    operating_hours: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    time_slot_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    min_party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    max_covers_per_slot: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_covers_per_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allow_overbooking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    overbooking_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="settings")


class TimeSlotCapacity(Base):
    __tablename__ = "time_slot_capacities"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="chk_tsc_day"),
        CheckConstraint("max_covers IS NULL OR max_covers >= 1", name="chk_tsc_max_covers"),
        UniqueConstraint("restaurant_id", "day_of_week", "time_slot", name="uq_tsc_restaurant_day_slot"),
        Index("idx_tsc_restaurant", "restaurant_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Sunday
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    max_covers: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("party_size >= 1", name="chk_res_party_size"),
        Index("idx_res_restaurant_day_slot", "restaurant_id", "reservation_date", "reservation_time"),
        Index("idx_res_customer", "customer_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False)
    customer_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    reservation_time: Mapped[str] = mapped_column(String(5), nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(
            ReservationStatus,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="customer_portal")
    capacity_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    overbooked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="reservations")
