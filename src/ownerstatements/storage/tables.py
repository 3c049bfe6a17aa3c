#!/usr/bin/env python3
"""
Datastore Tables

Declarative ORM tables for properties, monthly statements and their child
rows, durable import jobs and shared cache entries.

Expense uniqueness by (vendor, description) is not enforced here; duplicate
prevention happens in the import pipeline. The unique import_key only stops a
resumed commit from inserting the same prospective row twice.
"""

import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Date, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)


class Statement(Base):
    __tablename__ = "statements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id"), nullable=False)
    # Always the first day of the statement's calendar month
    statement_month: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    total_income: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_expenses: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_adjustments: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    grand_total: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Income(Base):
    __tablename__ = "statement_incomes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    statement_id: Mapped[str] = mapped_column(ForeignKey("statements.id"), index=True, nullable=False)
    guest: Mapped[str] = mapped_column(String(255), default="")
    gross_income: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Expense(Base):
    __tablename__ = "statement_expenses"
    __table_args__ = (Index("ix_statement_expenses_vendor_description", "vendor", "description"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    statement_id: Mapped[str] = mapped_column(ForeignKey("statements.id"), index=True, nullable=False)
    expense_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    vendor: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # <job id>:<row index> for imported rows, None for rows entered by hand
    import_key: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class Adjustment(Base):
    __tablename__ = "statement_adjustments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    statement_id: Mapped[str] = mapped_column(ForeignKey("statements.id"), index=True, nullable=False)
    description: Mapped[str] = mapped_column(String(500), default="")
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)


class ImportJobRecord(Base):
    __tablename__ = "import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    statement_id: Mapped[str] = mapped_column(String(36), nullable=False)
    statement_month: Mapped[date] = mapped_column(Date, nullable=False)
    document_name: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    progress: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Digest of the rows the first commit attempt wrote; a resume must match it
    commit_digest: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Token of the confirm currently committing, if any
    commit_claim: Mapped[str | None] = mapped_column(String(36), nullable=True)
    commit_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    # Wall-clock epoch seconds; entries are shared across processes
    expires_at: Mapped[float] = mapped_column(Float, index=True, nullable=False)
