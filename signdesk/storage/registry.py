from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, Text, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from signdesk.core.errors import NotFoundError
from signdesk.utils.file_utils import file_size

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DocumentRecord(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    mimetype: Mapped[Optional[str]] = mapped_column(Text)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger)
    signed_path: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


@lru_cache()
def get_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def session_factory(database_url: str) -> sessionmaker:
    return sessionmaker(bind=get_engine(database_url), autoflush=False, autocommit=False)


def ensure_schema(engine: Engine) -> bool:
    """Create the documents table; a database outage is logged and the service keeps running."""
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        logger.warning("Failed to ensure database schema, continuing without it: %s", exc)
        return False
    return True


def ping(db: Session) -> None:
    db.execute(text("SELECT 1"))


def register_document(
    db: Session, path: Path, filename: str | None, mimetype: str | None = None
) -> DocumentRecord:
    size_bytes = file_size(path)
    record = DocumentRecord(
        filename=filename or path.name,
        path=str(path),
        mimetype=mimetype or None,
        size_bytes=size_bytes,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_document(db: Session, document_id: int) -> DocumentRecord:
    record = db.get(DocumentRecord, document_id)
    if record is None:
        raise NotFoundError("Document not found")
    if not Path(record.path).exists():
        raise NotFoundError("Stored document file not found on disk")
    return record


def mark_signed(db: Session, record: DocumentRecord, signed_path: Path) -> None:
    """Record the signed artifact. The file already exists, so a failed update is only logged."""
    try:
        record.signed_path = str(signed_path)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to update signed_path for document %s: %s", record.id, exc)
