"""
Relational document store for carriers, guideline documents and chunks.

Backed by SQLAlchemy 2.0 (sync engine). Any SQLAlchemy error is wrapped as
DocumentStoreError, which the pipeline lets propagate to its caller.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from carrierfit.config import Settings, get_settings
from carrierfit.core.exceptions import DocumentStoreError
from carrierfit.pipeline.models import Carrier, Chunk, ChunkReference, Document


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class CarrierRow(Base):
    """Carrier available to the agency."""

    __tablename__ = "carriers"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    preference_rank: Mapped[int] = mapped_column(Integer, nullable=False, default=99)
    available_states: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class DocumentRow(Base):
    """Guideline document; one row per version."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    carrier_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    superseded_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class ChunkRow(Base):
    """Chunk of a guideline document. Embedding is null when embedding failed."""

    __tablename__ = "chunks"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    overlap_chars: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embedding: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


def _to_carrier(row: CarrierRow) -> Carrier:
    return Carrier(
        id=row.id,
        name=row.name,
        preference_rank=row.preference_rank,
        available_states=list(row.available_states or []),
    )


def _to_document(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        carrier_id=row.carrier_id,
        title=row.title,
        effective_date=row.effective_date,
        version=row.version,
        source_location=row.source_location,
        content_hash=row.content_hash,
        superseded_by=row.superseded_by,
        created_at=row.created_at,
    )


def _to_chunk(row: ChunkRow) -> Chunk:
    return Chunk(
        id=row.id,
        document_id=row.document_id,
        seq=row.seq,
        section=row.section,
        text=row.text,
        overlap_chars=row.overlap_chars,
        token_count=row.token_count,
        embedding=list(row.embedding) if row.embedding else None,
    )


class DocumentStore:
    """
    Persists carriers, documents and chunks.

    Writes are serialized with a lock so a file-backed SQLite database can
    be shared by the ingestion thread pool.
    """

    def __init__(self, database_url: str, echo: bool = False):
        engine_kwargs = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.database_url = database_url
        self.engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._write_lock = threading.Lock()

    @contextmanager
    def _session(self, write: bool = False) -> Iterator[Session]:
        lock = self._write_lock if write else None
        if lock:
            lock.acquire()
        try:
            with self._session_factory() as session:
                try:
                    yield session
                    if write:
                        session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    raise DocumentStoreError(f"Document store operation failed: {e}", e) from e
        finally:
            if lock:
                lock.release()

    def create_schema(self) -> None:
        """Create tables if they do not exist."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Schema creation failed: {e}", e) from e
        logger.info("Document store schema ready")

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Carriers
    # ------------------------------------------------------------------

    def upsert_carrier(self, carrier: Carrier) -> None:
        with self._session(write=True) as session:
            session.merge(
                CarrierRow(
                    id=carrier.id,
                    name=carrier.name,
                    preference_rank=carrier.preference_rank,
                    available_states=list(carrier.available_states),
                )
            )

    def list_carriers(self) -> List[Carrier]:
        """All carriers, most preferred first."""
        with self._session() as session:
            rows = session.scalars(
                select(CarrierRow).order_by(CarrierRow.preference_rank, CarrierRow.id)
            ).all()
            return [_to_carrier(row) for row in rows]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def save_document(self, document: Document) -> None:
        with self._session(write=True) as session:
            session.merge(
                DocumentRow(
                    id=document.id,
                    carrier_id=document.carrier_id,
                    title=document.title,
                    effective_date=document.effective_date,
                    version=document.version,
                    source_location=document.source_location,
                    content_hash=document.content_hash,
                    superseded_by=document.superseded_by,
                    created_at=document.created_at,
                )
            )

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._session() as session:
            row = session.get(DocumentRow, document_id)
            return _to_document(row) if row else None

    def find_latest_document(self, carrier_id: str, title: str) -> Optional[Document]:
        """Latest active (not superseded) version of a carrier's document."""
        with self._session() as session:
            row = session.scalars(
                select(DocumentRow)
                .where(
                    DocumentRow.carrier_id == carrier_id,
                    DocumentRow.title == title,
                    DocumentRow.superseded_by.is_(None),
                )
                .order_by(DocumentRow.version.desc())
                .limit(1)
            ).first()
            return _to_document(row) if row else None

    def max_version(self, carrier_id: str, title: str) -> int:
        """Highest version ever stored for a carrier's document, 0 if none."""
        with self._session() as session:
            value = session.scalar(
                select(func.max(DocumentRow.version)).where(
                    DocumentRow.carrier_id == carrier_id,
                    DocumentRow.title == title,
                )
            )
            return int(value or 0)

    def mark_superseded(self, document_id: str, superseded_by: str) -> None:
        with self._session(write=True) as session:
            session.execute(
                update(DocumentRow)
                .where(DocumentRow.id == document_id)
                .values(superseded_by=superseded_by)
            )

    def count_documents(self, carrier_id: Optional[str] = None, active_only: bool = True) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(DocumentRow)
            if carrier_id:
                stmt = stmt.where(DocumentRow.carrier_id == carrier_id)
            if active_only:
                stmt = stmt.where(DocumentRow.superseded_by.is_(None))
            return int(session.scalar(stmt) or 0)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def save_chunks(self, chunks: List[Chunk]) -> int:
        """Merge chunks by id; saving the same chunk twice keeps one row."""
        with self._session(write=True) as session:
            for chunk in chunks:
                session.merge(
                    ChunkRow(
                        id=chunk.id,
                        document_id=chunk.document_id,
                        seq=chunk.seq,
                        section=chunk.section,
                        text=chunk.text,
                        overlap_chars=chunk.overlap_chars,
                        token_count=chunk.token_count,
                        embedding=list(chunk.embedding) if chunk.embedding else None,
                    )
                )
        return len(chunks)

    def get_chunks(self, document_id: str) -> List[Chunk]:
        """Chunks of a document in sequence order."""
        with self._session() as session:
            rows = session.scalars(
                select(ChunkRow).where(ChunkRow.document_id == document_id).order_by(ChunkRow.seq)
            ).all()
            return [_to_chunk(row) for row in rows]

    def get_chunk_references(self, chunk_ids: List[str]) -> Dict[str, ChunkReference]:
        """Join chunks with their document metadata, keyed by chunk id."""
        if not chunk_ids:
            return {}

        with self._session() as session:
            rows = session.execute(
                select(ChunkRow, DocumentRow)
                .join(DocumentRow, ChunkRow.document_id == DocumentRow.id)
                .where(ChunkRow.id.in_(list(dict.fromkeys(chunk_ids))))
            ).all()

            return {
                chunk.id: ChunkReference(
                    chunk_id=chunk.id,
                    document_id=document.id,
                    carrier_id=document.carrier_id,
                    text=chunk.text,
                    section=chunk.section,
                    document_title=document.title,
                    effective_date=document.effective_date,
                )
                for chunk, document in rows
            }

    def chunks_missing_embeddings(self, limit: Optional[int] = None) -> List[Chunk]:
        """Chunks of active documents that were stored without a vector."""
        with self._session() as session:
            stmt = (
                select(ChunkRow)
                .join(DocumentRow, ChunkRow.document_id == DocumentRow.id)
                .where(DocumentRow.superseded_by.is_(None))
                .order_by(ChunkRow.document_id, ChunkRow.seq)
            )
            rows = [row for row in session.scalars(stmt).all() if not row.embedding]
            if limit is not None:
                rows = rows[:limit]
            return [_to_chunk(row) for row in rows]

    def embedded_chunks(self) -> List[Tuple[Chunk, str]]:
        """Chunks of active documents that have a vector, paired with their carrier id."""
        with self._session() as session:
            rows = session.execute(
                select(ChunkRow, DocumentRow.carrier_id)
                .join(DocumentRow, ChunkRow.document_id == DocumentRow.id)
                .where(DocumentRow.superseded_by.is_(None))
                .order_by(ChunkRow.document_id, ChunkRow.seq)
            ).all()
            return [(_to_chunk(row), carrier_id) for row, carrier_id in rows if row.embedding]

    def update_chunk_embedding(self, chunk_id: str, embedding: List[float]) -> None:
        with self._session(write=True) as session:
            session.execute(
                update(ChunkRow).where(ChunkRow.id == chunk_id).values(embedding=list(embedding))
            )


@lru_cache()
def get_document_store() -> DocumentStore:
    """Get cached document store for the configured database."""
    settings: Settings = get_settings()
    store = DocumentStore(settings.database_url)
    store.create_schema()
    return store
