"""SQLModel type definitions for database tables."""

from datetime import UTC, datetime

from sqlmodel import JSON, Column, Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(UTC)


class KnowledgeChunkRecord(SQLModel, table=True):
    """Knowledge chunk table model. Embeddings are stored flat as a JSON array."""

    __tablename__ = "knowledge_chunks"

    id: str = Field(primary_key=True)
    course_id: str = Field(index=True)
    source_file: str = Field(index=True)
    chunk_index: int
    content: str
    embedding: list[float] = Field(default_factory=list, sa_column=Column(JSON))
    chunk_metadata: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_utcnow)
