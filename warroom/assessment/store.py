"""
Assessment persistence.

One row per assessment. The full record is stored as JSON text, with a few
columns pulled out for listing. Records are loaded and saved whole; the
engine never reads a partial record.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from config import get_settings
from warroom.assessment.session import AssessmentRecord
from warroom.core.exceptions import NotFoundError
from warroom.core.serialization import model_from_json, model_to_json


class Base(DeclarativeBase):
    pass


class AssessmentRow(Base):
    """Serialized AssessmentRecord."""

    __tablename__ = "assessments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    current_stage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AssessmentRow {self.id} {self.status} stage={self.current_stage}>"


class AssessmentStore:
    """Load and save AssessmentRecords through SQLAlchemy."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.engine = create_engine(self.database_url, echo=settings.log_level == "DEBUG", pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    def save(self, record: AssessmentRecord) -> None:
        """Insert or replace a record."""
        row = AssessmentRow(
            id=record.assessment_id,
            status=record.status.value,
            current_stage=record.current_stage,
            payload=model_to_json(record),
            updated_at=datetime.now(timezone.utc),
        )
        with self.session_scope() as session:
            session.merge(row)
        logger.debug(f"Saved assessment {record.assessment_id} ({record.status.value})")

    def load(self, assessment_id: str) -> AssessmentRecord:
        """
        Load a record by id.

        Raises:
            NotFoundError: No such assessment
            ValidationError: Stored payload no longer fits the record model
        """
        with self.session_scope() as session:
            row = session.get(AssessmentRow, assessment_id)
            if row is None:
                raise NotFoundError(f"Assessment {assessment_id} not found")
            payload = row.payload
        return model_from_json(AssessmentRecord, payload)

    def exists(self, assessment_id: str) -> bool:
        with self.session_scope() as session:
            return session.get(AssessmentRow, assessment_id) is not None

    def delete(self, assessment_id: str) -> bool:
        """Delete a record; False if it did not exist."""
        with self.session_scope() as session:
            row = session.get(AssessmentRow, assessment_id)
            if row is None:
                return False
            session.delete(row)
        logger.info(f"Deleted assessment {assessment_id}")
        return True

    def list_records(self) -> list[dict[str, object]]:
        """Id, status, stage and last update of every stored assessment, newest first."""
        with self.session_scope() as session:
            rows = session.execute(
                select(AssessmentRow.id, AssessmentRow.status, AssessmentRow.current_stage, AssessmentRow.updated_at)
                .order_by(AssessmentRow.updated_at.desc())
            ).all()
        return [
            {"id": r.id, "status": r.status, "current_stage": r.current_stage, "updated_at": r.updated_at}
            for r in rows
        ]

    def list_ids(self) -> list[str]:
        return [r["id"] for r in self.list_records()]
