"""Knowledge service: course content indexing and in-memory semantic search."""

from __future__ import annotations

import math
import uuid

from loguru import logger

from course_assistant.application.chunking import DEFAULT_CHUNK_SIZE, split_into_chunks
from course_assistant.application.exceptions import IndexingFailedError, ValidationError
from course_assistant.application.similarity import rank_by_similarity
from course_assistant.application.validation import require_identifier, require_text
from course_assistant.domain.models import (
    ChunkMetadata,
    IndexResult,
    KnowledgeChunk,
    KnowledgeStats,
    SearchResult,
)
from course_assistant.domain.protocols import IEmbeddingClient, IKnowledgeStore


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token for English text)."""
    return math.ceil(len(text) / 4)


class KnowledgeService:
    """Indexes course text into embedded chunks and answers similarity queries.

    Parameters
    ----------
    store:
        Flat chunk storage (scanned in full on every search).
    embedder:
        Client used for both chunk and query embeddings.
    chunk_size:
        Soft character limit for each chunk.
    """

    def __init__(
        self,
        store: IKnowledgeStore,
        embedder: IEmbeddingClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.chunk_size = chunk_size

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def index_course_content(
        self, course_id: str, content: str, source_file: str
    ) -> IndexResult:
        """Replace the chunks of ``(course_id, source_file)`` with freshly embedded ones.

        A chunk whose embedding fails is logged and skipped; the call only
        fails when no chunk at all could be stored.

        Raises:
            ValidationError: On a malformed course id or empty content/source file.
            IndexingFailedError: If every chunk failed.
        """
        require_identifier(course_id, "courseId")
        require_text(content, "Content cannot be empty")
        source_file = require_text(source_file, "Source file is required")

        logger.info("Starting indexing for course {} | file={}", course_id, source_file)

        deleted = self.store.delete_by_source(course_id, source_file)
        if deleted:
            logger.info("Deleted {} existing chunks for re-indexing", deleted)

        chunks = split_into_chunks(content, self.chunk_size)
        if not chunks:
            raise ValidationError("No chunks created from content")

        created = 0
        for index, text in enumerate(chunks):
            logger.debug("Processing chunk {}/{}", index + 1, len(chunks))
            try:
                embedding = await self.embedder.embed(text)
                self.store.add_chunk(
                    KnowledgeChunk(
                        id=str(uuid.uuid4()),
                        course_id=course_id,
                        source_file=source_file,
                        chunk_index=index,
                        content=text,
                        embedding=tuple(embedding),
                        metadata=ChunkMetadata(token_count=estimate_tokens(text)),
                    )
                )
            except Exception:
                logger.exception("Failed to index chunk {} of {}", index, source_file)
                continue
            created += 1

        if created == 0:
            raise IndexingFailedError(f"Failed to index any of {len(chunks)} chunks from {source_file}")

        logger.info(
            "Indexing completed | course={} file={} | {}/{} chunks created",
            course_id,
            source_file,
            created,
            len(chunks),
        )
        return IndexResult(chunks_created=created)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_similar(
        self,
        query: str,
        course_id: str | None = None,
        limit: int = 5,
        min_score: float = 0.7,
    ) -> list[SearchResult]:
        """Embed *query* and rank stored chunks by cosine similarity.

        Args:
            query: Free-text question.
            course_id: Restrict candidates to one course.
            limit: Maximum number of results.
            min_score: Similarity threshold (inclusive).

        Returns:
            Results ordered by score, or ``[]`` when no chunk is stored.
        """
        query = require_text(query, "Query cannot be empty")
        if course_id is not None:
            require_identifier(course_id, "courseId")

        query_embedding = await self.embedder.embed(query)

        chunks = self.store.list_chunks(course_id)
        if not chunks:
            logger.warning("No chunks stored{}", f" for course {course_id}" if course_id else "")
            return []

        ranked = rank_by_similarity(
            query_embedding,
            ((chunk.embedding, chunk) for chunk in chunks),
            limit=limit,
            min_score=min_score,
        )
        logger.debug(
            "Search scored {} chunks | {} above {:.2f}", len(chunks), len(ranked), min_score
        )
        return [
            SearchResult(
                content=r.item.content,
                course_id=r.item.course_id,
                score=r.score,
                metadata=r.item.metadata,
            )
            for r in ranked
        ]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_stats(self) -> KnowledgeStats:
        stats = self.store.get_stats()
        return KnowledgeStats(
            total_chunks=stats["total_chunks"],
            courses_covered=stats["courses_covered"],
        )

    def delete_course_chunks(self, course_id: str) -> int:
        """Drop all knowledge of a course and return how many chunks were removed."""
        require_identifier(course_id, "courseId")
        deleted = self.store.delete_by_course(course_id)
        logger.info("Deleted {} chunks for course {}", deleted, course_id)
        return deleted
