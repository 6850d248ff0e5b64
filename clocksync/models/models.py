from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    BigInteger,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


# INTEGER PRIMARY KEY is the only autoincrementing column type on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    """Tenant. Its row also serializes change-log appends for the tenant."""
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    short_name: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Installation(Base):
    """A time clock that polls for changes with its own cursor."""
    __tablename__ = "installations"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    employee_filters: Mapped[Optional[dict]] = mapped_column(JSON)  # {cost_centers: {indexes: [{index, values: [{cost_center_id}]}]}}
    client_settings: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    last_ip: Mapped[Optional[str]] = mapped_column(String(64))
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Employee(Base):
    """Time clock view of an HR employee; cost center slots drive installation filters."""
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)  # upstream HR id
    first_name: Mapped[str] = mapped_column(String(100), default="")
    middle_initial: Mapped[str] = mapped_column(String(5), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    employee_number: Mapped[Optional[str]] = mapped_column(String(100))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    cost_center_0: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cost_center_1: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cost_center_2: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cost_center_3: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    cost_center_4: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    @property
    def cost_centers(self) -> list:
        return [
            self.cost_center_0,
            self.cost_center_1,
            self.cost_center_2,
            self.cost_center_3,
            self.cost_center_4,
        ]


class Enrollment(Base):
    """Biometric enrollment captured at an installation. Soft-deleted only."""
    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)  # global enrollment id
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_account_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_date: Mapped[Optional[str]] = mapped_column(String(64))  # client supplied
    installation_id: Mapped[int] = mapped_column(ForeignKey("installations.id"), nullable=False)
    data: Mapped[Optional[str]] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_enrollment_employee_position", "employee_account_id", "position", "active"),
    )


class ChangeRecord(Base):
    """Append-only change log entry; the id is the installations' sync cursor"""
    __tablename__ = "change_records"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)  # ADD_EMPLOYEE|DELETE_EMPLOYEE|ADD_ENROLLMENT|DELETE_ENROLLMENT|UPDATE_INSTALL_FILTER
    data: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_change_company_id", "company_id", "id"),
        # never reuse a rowid, even for the max row
        {"sqlite_autoincrement": True},
    )
