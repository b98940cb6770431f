"""
Sync run audit log.

Uses SQLite with SQLAlchemy to keep a history of sync runs and per-row
outcomes. The log is only ever written by a run; nothing here feeds back
into matching or gating, every run reads the registry fresh.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from .sync import SyncReport

Base = declarative_base()


class SyncRun(Base):
    """One sync run."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    started_at = Column(DateTime, nullable=False, default=datetime.now)
    source = Column(String, nullable=True)  # input file name
    status_field = Column(String, nullable=True)
    dry_run = Column(Boolean, nullable=False, default=False)
    total = Column(Integer, nullable=False, default=0)
    matched = Column(Integer, nullable=False, default=0)
    updated = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    counts_json = Column(Text, nullable=False, default="{}")

    outcomes = relationship("RowOutcome", back_populates="run", cascade="all, delete-orphan")

    @property
    def counts(self) -> dict:
        return json.loads(self.counts_json or "{}")


class RowOutcome(Base):
    """Result of one import row within a run."""

    __tablename__ = "row_outcomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Integer, ForeignKey("sync_runs.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    display_name = Column(String, nullable=False)
    derived_label = Column(String, nullable=True)
    matched = Column(Boolean, nullable=False)
    match_type = Column(String, nullable=True)
    score = Column(Float, nullable=True)
    entry_id = Column(String, nullable=True)
    current_label = Column(String, nullable=True)
    decision = Column(String, nullable=False)
    reason = Column(Text, nullable=True)
    updated = Column(Boolean, nullable=False, default=False)
    would_update = Column(Boolean, nullable=False, default=False)
    error_json = Column(Text, nullable=True)

    run = relationship("SyncRun", back_populates="outcomes")


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()


def record_report(db_path: Path, report: SyncReport, source: Optional[str] = None) -> int:
    """
    Store a finished sync report.

    Args:
        db_path: Path to SQLite database file
        report: Report returned by reconcile/run_sync
        source: Where the roster came from (file name)

    Returns:
        id of the new sync_runs row
    """
    init_database(db_path)
    session = get_session(db_path)
    try:
        run = SyncRun(
            source=source,
            status_field=report.status_field,
            dry_run=report.dry_run,
            total=report.total,
            matched=sum(1 for r in report.results if r.matched),
            updated=report.updated,
            failed=report.failed,
            counts_json=json.dumps(report.counts, sort_keys=True),
        )
        for position, r in enumerate(report.results):
            run.outcomes.append(RowOutcome(
                position=position,
                display_name=r.display_name,
                derived_label=r.derived_label,
                matched=r.matched,
                match_type=r.match_type,
                score=r.score,
                entry_id=str(r.entry_id) if r.entry_id is not None else None,
                current_label=r.current_label,
                decision=r.decision,
                reason=r.reason,
                updated=r.updated,
                would_update=r.would_update,
                error_json=json.dumps(r.error, default=str) if r.error is not None else None,
            ))
        session.add(run)
        session.commit()
        return run.id
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def list_runs(db_path: Path, limit: int = 20) -> List[SyncRun]:
    """Most recent runs first. Returned objects are detached from the session."""
    if not db_path.exists():
        return []
    session = get_session(db_path)
    try:
        runs = (
            session.query(SyncRun)
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(limit)
            .all()
        )
        session.expunge_all()
        return runs
    finally:
        session.close()


def get_outcomes(db_path: Path, run_id: int) -> List[RowOutcome]:
    """Row outcomes of one run, in input order."""
    session = get_session(db_path)
    try:
        outcomes = (
            session.query(RowOutcome)
            .filter_by(run_id=run_id)
            .order_by(RowOutcome.position)
            .all()
        )
        session.expunge_all()
        return outcomes
    finally:
        session.close()
