from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from astana.core.extensions import db

MAX_HEIRS_PER_GRAVE = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlockStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    QRIS = "qris"


class UserRole(str, Enum):
    ADMIN = "admin"
    OPERATOR = "operator"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[str] = mapped_column(db.String(30), nullable=False, default=UserRole.OPERATOR.value)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == UserRole.ADMIN.value


class Block(db.Model):
    __tablename__ = "block"
    __table_args__ = (
        CheckConstraint("total_capacity >= 0", name="ck_block_capacity"),
        CheckConstraint("annual_fee >= 0", name="ck_block_annual_fee"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(db.String(1), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    total_capacity: Mapped[int] = mapped_column(nullable=False, default=0)
    annual_fee: Mapped[int] = mapped_column(nullable=False, default=0)
    status: Mapped[str] = mapped_column(db.String(20), nullable=False, default=BlockStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    graves = relationship("Grave", back_populates="block", passive_deletes="all")

    @validates("code")
    def validate_code(self, _key, value: str) -> str:
        code = (value or "").strip().upper()
        if len(code) != 1 or not ("A" <= code <= "Z"):
            raise ValueError("Kode blok harus 1 huruf")
        return code

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "total_capacity": self.total_capacity,
            "annual_fee": self.annual_fee,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Grave(db.Model):
    __tablename__ = "grave"
    __table_args__ = (
        UniqueConstraint("block_id", "number", name="uq_grave_block_number"),
        Index("ix_grave_deceased_name", "deceased_name"),
        Index("ix_grave_date_of_death", "date_of_death"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    deceased_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    block_id: Mapped[int] = mapped_column(
        ForeignKey("block.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    number: Mapped[str] = mapped_column(db.String(20), nullable=False)
    date_of_death: Mapped[date] = mapped_column(nullable=False)
    burial_date: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    block = relationship("Block", back_populates="graves")
    heirs = relationship(
        "Heir",
        back_populates="grave",
        cascade="all, delete-orphan",
        order_by="Heir.order_number",
    )
    payments = relationship(
        "Payment",
        back_populates="grave",
        cascade="all, delete-orphan",
        order_by="Payment.year",
    )

    @property
    def location_label(self) -> str:
        code = self.block.code if self.block else "?"
        return f"{code}-{self.number}"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "deceased_name": self.deceased_name,
            "block_id": self.block_id,
            "block_code": self.block.code if self.block else None,
            "annual_fee": self.block.annual_fee if self.block else 0,
            "number": self.number,
            "date_of_death": self.date_of_death.isoformat() if self.date_of_death else None,
            "burial_date": self.burial_date.isoformat() if self.burial_date else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Heir(db.Model):
    __tablename__ = "heir"
    __table_args__ = (
        UniqueConstraint("grave_id", "order_number", name="uq_heir_grave_order"),
        CheckConstraint("order_number BETWEEN 1 AND 3", name="ck_heir_order_number"),
        Index("ix_heir_full_name", "full_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    grave_id: Mapped[int] = mapped_column(
        ForeignKey("grave.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_number: Mapped[int] = mapped_column(nullable=False, default=1)
    full_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    phone_number: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    relationship_label: Mapped[str] = mapped_column("relationship", db.String(40), nullable=False, default="")
    address: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    is_primary: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    grave = relationship("Grave", back_populates="heirs")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "grave_id": self.grave_id,
            "order_number": self.order_number,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "relationship": self.relationship_label,
            "address": self.address,
            "is_primary": self.is_primary,
        }


class Payment(db.Model):
    __tablename__ = "payment"
    __table_args__ = (
        UniqueConstraint("grave_id", "year", name="uq_payment_grave_year"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("ix_payment_year_date", "year", "payment_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    grave_id: Mapped[int] = mapped_column(
        ForeignKey("grave.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(nullable=False, index=True)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(db.String(30), nullable=False, default=PaymentMethod.CASH.value)
    paid_by: Mapped[str] = mapped_column(db.String(160), nullable=False, default="")
    notes: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    grave = relationship("Grave", back_populates="payments")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "grave_id": self.grave_id,
            "year": self.year,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "paid_by": self.paid_by,
            "notes": self.notes,
        }


class Settings(db.Model):
    # Singleton row: foundation profile and the active ledger year.
    __tablename__ = "settings"
    __table_args__ = (CheckConstraint("id = 1", name="ck_settings_singleton"),)

    id: Mapped[int] = mapped_column(primary_key=True, default=1)
    foundation_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    address: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    active_year: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "foundation_name": self.foundation_name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "active_year": self.active_year,
        }


def seed_demo_data(session) -> None:
    admin = User(
        email="admin@astana.local",
        full_name="Admin Yayasan",
        password_hash=generate_password_hash("admin123"),
        role=UserRole.ADMIN.value,
    )
    operator = User(
        email="operator@astana.local",
        full_name="Petugas Iuran",
        password_hash=generate_password_hash("operator123"),
        role=UserRole.OPERATOR.value,
    )
    session.add_all([admin, operator])

    session.add(
        Settings(
            id=1,
            foundation_name="Yayasan Wakaf Makam Al-Ikhlas",
            address="Jl. Raya Cipaku No. 123, Kota Bandung",
            phone="(022) 1234567",
            active_year=2024,
        )
    )

    block_a = Block(code="A", description="Dekat gerbang utama", total_capacity=50, annual_fee=200000)
    block_b = Block(code="B", description="Sisi timur", total_capacity=40, annual_fee=150000)
    block_c = Block(code="C", description="Perluasan", total_capacity=30, annual_fee=100000, status=BlockStatus.INACTIVE.value)
    session.add_all([block_a, block_b, block_c])
    session.flush()

    ahmad = Grave(
        deceased_name="Ahmad Sulaiman",
        block_id=block_a.id,
        number="01",
        date_of_death=date(2019, 4, 12),
        burial_date=date(2019, 4, 12),
    )
    siti = Grave(
        deceased_name="Siti Aminah",
        block_id=block_a.id,
        number="02",
        date_of_death=date(2020, 8, 3),
    )
    budi = Grave(
        deceased_name="Budi Santoso",
        block_id=block_b.id,
        number="05A",
        date_of_death=date(2021, 1, 20),
        notes="Makam keluarga",
    )
    session.add_all([ahmad, siti, budi])
    session.flush()

    session.add_all(
        [
            Heir(grave_id=ahmad.id, order_number=1, full_name="Rahmat Sulaiman", phone_number="081234567890",
                 relationship_label="anak", is_primary=True),
            Heir(grave_id=ahmad.id, order_number=2, full_name="Nur Aisyah", relationship_label="istri"),
            Heir(grave_id=siti.id, order_number=1, full_name="Dewi Lestari", phone_number="081298765432",
                 relationship_label="anak", is_primary=True),
            Heir(grave_id=budi.id, order_number=1, full_name="Agus Santoso", relationship_label="saudara",
                 is_primary=True),
        ]
    )

    session.add_all(
        [
            Payment(grave_id=ahmad.id, year=2022, payment_date=date(2022, 2, 1), amount=150000,
                    payment_method=PaymentMethod.CASH.value, paid_by="Rahmat Sulaiman"),
            Payment(grave_id=ahmad.id, year=2023, payment_date=date(2023, 2, 3), amount=200000,
                    payment_method=PaymentMethod.TRANSFER.value),
            Payment(grave_id=siti.id, year=2023, payment_date=date(2023, 5, 9), amount=200000,
                    payment_method=PaymentMethod.QRIS.value),
        ]
    )
    session.commit()
