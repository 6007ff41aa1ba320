"""Flat knowledge-chunk storage with SQLite via SQLModel."""

from __future__ import annotations

from pathlib import Path

from loguru import logger
from sqlmodel import Session, SQLModel, create_engine, select

from course_assistant.domain.models import ChunkMetadata, KnowledgeChunk
from course_assistant.infrastructure.db_models import KnowledgeChunkRecord


class KnowledgeStore:
    """Persists chunks per ``(course_id, source_file)`` and scans them for search."""

    def __init__(self, db_path: Path):
        """
        Initialize knowledge store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.engine = None
        self.session: Session | None = None

    def connect(self) -> None:
        """Connect to database and make sure the chunk table exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        self.session = Session(self.engine)
        SQLModel.metadata.create_all(self.engine, tables=[KnowledgeChunkRecord.__table__])
        logger.info("Knowledge store ready at {}", self.db_path)

    def close(self) -> None:
        """Close database connection."""
        if self.session:
            self.session.close()
        if self.engine:
            self.engine.dispose()

    def _require_session(self) -> Session:
        if not self.session:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: KnowledgeChunk) -> None:
        """Insert a single chunk with its embedding."""
        session = self._require_session()
        session.add(
            KnowledgeChunkRecord(
                id=chunk.id,
                course_id=chunk.course_id,
                source_file=chunk.source_file,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=list(chunk.embedding),
                chunk_metadata={
                    "token_count": chunk.metadata.token_count,
                    "page_number": chunk.metadata.page_number,
                    "section": chunk.metadata.section,
                },
            )
        )
        try:
            session.commit()
        except Exception:
            session.rollback()
            raise

    def delete_by_source(self, course_id: str, source_file: str) -> int:
        """Remove every chunk of one source file in one course. Returns the count."""
        session = self._require_session()
        records = session.exec(
            select(KnowledgeChunkRecord).where(
                KnowledgeChunkRecord.course_id == course_id,
                KnowledgeChunkRecord.source_file == source_file,
            )
        ).all()
        return self._delete_records(session, records)

    def delete_by_course(self, course_id: str) -> int:
        """Remove every chunk of a course. Returns the count."""
        session = self._require_session()
        records = session.exec(
            select(KnowledgeChunkRecord).where(KnowledgeChunkRecord.course_id == course_id)
        ).all()
        return self._delete_records(session, records)

    @staticmethod
    def _delete_records(session: Session, records: list[KnowledgeChunkRecord]) -> int:
        for record in records:
            session.delete(record)
        session.commit()
        return len(records)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_chunks(self, course_id: str | None = None) -> list[KnowledgeChunk]:
        """Load all chunks, optionally restricted to one course."""
        session = self._require_session()
        statement = select(KnowledgeChunkRecord)
        if course_id:
            statement = statement.where(KnowledgeChunkRecord.course_id == course_id)
        statement = statement.order_by(
            KnowledgeChunkRecord.course_id,
            KnowledgeChunkRecord.source_file,
            KnowledgeChunkRecord.chunk_index,
        )
        return [self._to_chunk(record) for record in session.exec(statement).all()]

    def get_stats(self) -> dict:
        """Get statistics about the knowledge base."""
        session = self._require_session()
        course_ids = session.exec(select(KnowledgeChunkRecord.course_id)).all()
        return {
            "total_chunks": len(course_ids),
            "courses_covered": len(set(course_ids)),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_chunk(record: KnowledgeChunkRecord) -> KnowledgeChunk:
        metadata = record.chunk_metadata or {}
        return KnowledgeChunk(
            id=record.id,
            course_id=record.course_id,
            source_file=record.source_file,
            chunk_index=record.chunk_index,
            content=record.content,
            embedding=tuple(float(x) for x in record.embedding or []),
            metadata=ChunkMetadata(
                token_count=int(metadata.get("token_count", 0)),
                page_number=metadata.get("page_number"),
                section=metadata.get("section"),
            ),
            created_at=record.created_at.isoformat() if record.created_at else "",
        )
