"""SQLAlchemy ORM models for the receipt rewards service.

``LedgerEntry`` rows are the durable witnesses of accepted receipts:
they are written exactly once by the award recorder, never updated,
and queried by the duplicate ledger. ``User`` holds the spendable
points balance for a submitter identity and ``PointsTransaction``
records every balance movement for the history screen.

If you extend or modify these models call the ``init_db`` helper during
development to recreate the tables.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship

from rewards.core.database import Base


class User(Base):
    """Points account for a submitter identity established upstream."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    points = Column(Integer, nullable=False, default=0)
    lifetime_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    ledger_entries = relationship("LedgerEntry", back_populates="submitter")
    points_transactions = relationship("PointsTransaction", back_populates="user")


class LedgerEntry(Base):
    """Accepted receipt; also the duplicate-detection witness."""

    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    submitter_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    order_number = Column(String, nullable=False)
    order_date = Column(String, nullable=False)
    order_time = Column(String, nullable=False)
    order_total = Column(Numeric(10, 2), nullable=False)
    points_awarded = Column(Integer, nullable=False)
    accepted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    submitter = relationship("User", back_populates="ledger_entries")

    # One index per duplicate-matching pair
    __table_args__ = (
        Index("ix_ledger_number_date", "order_number", "order_date"),
        Index("ix_ledger_number_time", "order_number", "order_time"),
        Index("ix_ledger_date_time", "order_date", "order_time"),
        Index("ix_ledger_submitter_accepted", "submitter_id", "accepted_at"),
    )


class PointsTransaction(Base):
    """Single movement of a user's points balance."""

    __tablename__ = "points_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(String, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    ledger_entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="points_transactions")
    ledger_entry = relationship("LedgerEntry")
