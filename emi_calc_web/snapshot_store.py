"""Persistence layer for loans and their versioned repayment schedules.

Each loan keeps its current terms and an append-only list of schedule
snapshots, numbered from 1. It defaults to SQLite for local development, but
accepts any SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from emi_calc.data_models import LoanInput, SnapshotNotFoundError
from emi_calc.serialization import input_from_dict, input_to_dict, output_from_dict, output_to_dict
from emi_calc.versioning import Snapshot, SnapshotLog

DEFAULT_DATABASE_URL = "sqlite:///emi_snapshots.sqlite3"

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    terms_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)


class SnapshotModel(Base):
    __tablename__ = "repayment_snapshots"
    __table_args__ = (UniqueConstraint("loan_id", "version", name="uq_snapshot_loan_version"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    version = Column(Integer, nullable=False)
    memo = Column(Text, nullable=False, default="")
    annual_rate = Column(String(32), nullable=False)
    principal_balance = Column(String(64), nullable=False)
    months_remaining = Column(Integer, nullable=False)
    apr = Column(String(32), nullable=False)
    output_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class SnapshotStore:
    """Database-backed loan and schedule version store."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def create_loan(self, loan: LoanInput, loan_id: Optional[str] = None) -> str:
        loan_id = loan_id or uuid4().hex
        with self._session_factory() as session:
            session.add(LoanModel(id=loan_id, terms_json=json.dumps(input_to_dict(loan))))
            session.commit()
        logger.info("Created loan %s", loan_id)
        return loan_id

    def get_terms(self, loan_id: str) -> LoanInput:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise SnapshotNotFoundError(f"Loan {loan_id} does not exist")
            return input_from_dict(json.loads(row.terms_json))

    def update_terms(self, loan_id: str, loan: LoanInput) -> None:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise SnapshotNotFoundError(f"Loan {loan_id} does not exist")
            row.terms_json = json.dumps(input_to_dict(loan))
            session.commit()

    def save_snapshot(self, loan_id: str, snapshot: Snapshot) -> None:
        """Persist ``snapshot``; the (loan, version) pair may only be written once."""
        payload = SnapshotModel(
            loan_id=loan_id,
            version=snapshot.version,
            memo=snapshot.memo,
            annual_rate=str(snapshot.annual_rate),
            principal_balance=str(snapshot.principal_balance),
            months_remaining=snapshot.months_remaining,
            apr=str(snapshot.apr),
            output_json=json.dumps(output_to_dict(snapshot.output)),
            created_at=snapshot.created_at,
        )
        with self._session_factory() as session:
            session.add(payload)
            session.commit()
        logger.info("Saved schedule version %d for loan %s", snapshot.version, loan_id)

    def load_log(self, loan_id: str) -> SnapshotLog:
        with self._session_factory() as session:
            rows = session.execute(
                select(SnapshotModel)
                .where(SnapshotModel.loan_id == loan_id)
                .order_by(SnapshotModel.version.asc())
            ).scalars().all()
            return SnapshotLog(self._to_snapshot(row) for row in rows)

    def list_snapshots(self, loan_id: str) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            if session.get(LoanModel, loan_id) is None:
                raise SnapshotNotFoundError(f"Loan {loan_id} does not exist")
            rows = session.execute(
                select(SnapshotModel)
                .where(SnapshotModel.loan_id == loan_id)
                .order_by(SnapshotModel.version.asc())
            ).scalars()
            return [self._to_dict(row) for row in rows]

    @staticmethod
    def _to_snapshot(row: SnapshotModel) -> Snapshot:
        return Snapshot(
            version=row.version,
            output=output_from_dict(json.loads(row.output_json)),
            memo=row.memo,
            annual_rate=Decimal(row.annual_rate),
            principal_balance=Decimal(row.principal_balance),
            months_remaining=row.months_remaining,
            apr=Decimal(row.apr),
            created_at=row.created_at,
        )

    @staticmethod
    def _to_dict(row: SnapshotModel) -> Dict[str, Any]:
        return {
            "version": row.version,
            "memo": row.memo,
            "annual_rate": row.annual_rate,
            "principal_balance": row.principal_balance,
            "months_remaining": row.months_remaining,
            "apr": row.apr,
            "created_at": row.created_at.isoformat(),
        }


def create_store_from_env(url: str | None) -> SnapshotStore:
    return SnapshotStore(url or DEFAULT_DATABASE_URL)
