"""Knowledge routes: indexing, semantic search, stats and course cleanup."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from loguru import logger

from course_assistant.application.knowledge_service import KnowledgeService
from course_assistant.presentation.schemas import (
    DeleteCourseResponse,
    IndexRequest,
    IndexResponse,
    SearchResultResponse,
    StatsResponse,
)

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


@router.post("/index", response_model=IndexResponse, status_code=201)
async def index_content(request: IndexRequest, raw_request: Request):
    """Chunk, embed and store course content, replacing a previous version of the same file."""
    knowledge: KnowledgeService = raw_request.app.state.knowledge

    logger.info(
        "POST /knowledge/index | course={} file={} chars={}",
        request.course_id,
        request.source_file,
        len(request.content),
    )
    result = await knowledge.index_course_content(
        request.course_id, request.content, request.source_file
    )
    return IndexResponse(chunks_created=result.chunks_created)


@router.get("/search", response_model=list[SearchResultResponse])
async def search(
    raw_request: Request,
    q: str = Query(description="Free-text question"),
    course_id: str | None = Query(default=None, alias="courseId"),
    limit: int | None = Query(default=None, ge=1, le=20),
    min_score: float | None = Query(default=None, ge=0.0, le=1.0, alias="minScore"),
):
    """Semantic search over indexed chunks."""
    knowledge: KnowledgeService = raw_request.app.state.knowledge
    settings = raw_request.app.state.settings

    results = await knowledge.search_similar(
        q,
        course_id=course_id,
        limit=limit if limit is not None else settings.search_limit,
        min_score=min_score if min_score is not None else settings.search_min_score,
    )
    logger.info("GET /knowledge/search | course={} results={}", course_id, len(results))
    return [SearchResultResponse.from_domain(r) for r in results]


@router.get("/stats", response_model=StatsResponse)
async def stats(raw_request: Request):
    knowledge: KnowledgeService = raw_request.app.state.knowledge
    result = knowledge.get_stats()
    return StatsResponse(total_chunks=result.total_chunks, courses_covered=result.courses_covered)


@router.delete("/course/{course_id}", response_model=DeleteCourseResponse)
async def delete_course(course_id: str, raw_request: Request):
    """Remove every indexed chunk of a course."""
    knowledge: KnowledgeService = raw_request.app.state.knowledge
    deleted = knowledge.delete_course_chunks(course_id)
    return DeleteCourseResponse(deleted_count=deleted)
