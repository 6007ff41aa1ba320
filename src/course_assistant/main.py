"""FastAPI backend for the course assistant.

This module is a thin **presentation layer**. All business logic lives in
the ``application`` package so it can be tested and reused independently of
any HTTP framework.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from openai import AsyncOpenAI

from course_assistant.application.conversation_cache import ConversationCache
from course_assistant.application.knowledge_service import KnowledgeService
from course_assistant.application.use_cases.chat import ChatUseCase
from course_assistant.config import Settings, get_settings
from course_assistant.infrastructure.chat_store import ChatStore
from course_assistant.infrastructure.completion_client import OpenAICompletionClient
from course_assistant.infrastructure.embedding_client import OpenAIEmbeddingClient
from course_assistant.infrastructure.knowledge_store import KnowledgeStore
from course_assistant.infrastructure.retry import RetryPolicy
from course_assistant.logging_config import setup_logging
from course_assistant.presentation.errors import register_exception_handlers
from course_assistant.presentation.routes.chat import router as chat_router
from course_assistant.presentation.routes.knowledge import router as knowledge_router


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_openai_client(settings: Settings) -> AsyncOpenAI:
    """Async client with SDK retries disabled; ``RetryPolicy`` owns retrying."""
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        max_retries=0,
    )


def build_knowledge_service(
    settings: Settings, client: AsyncOpenAI, store: KnowledgeStore
) -> KnowledgeService:
    embedder = OpenAIEmbeddingClient(
        client,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        retry_policy=RetryPolicy(max_attempts=settings.upstream_max_attempts),
    )
    return KnowledgeService(store, embedder, chunk_size=settings.chunk_size)


# ---------------------------------------------------------------------------
# Lifespan: initialise shared resources once at startup
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Set up and tear down services around the application lifetime."""
    settings = get_settings()
    setup_logging(settings)
    settings.validate_runtime()

    client = build_openai_client(settings)

    knowledge_store = KnowledgeStore(db_path=settings.db_path)
    knowledge_store.connect()

    chat_store = ChatStore(db_path=settings.db_path)
    chat_store.connect()

    knowledge = build_knowledge_service(settings, client, knowledge_store)
    completion = OpenAICompletionClient(
        client,
        model=settings.chat_model,
        temperature=settings.chat_temperature,
        max_tokens=settings.chat_max_tokens,
        retry_policy=RetryPolicy(max_attempts=settings.upstream_max_attempts),
    )

    # Wire up the use case with all its dependencies
    app.state.settings = settings
    app.state.knowledge = knowledge
    app.state.chat_uc = ChatUseCase(
        chat_store=chat_store,
        knowledge_service=knowledge,
        completion_client=completion,
        cache=ConversationCache(max_messages=settings.history_prompt_limit),
        context_limit=settings.chat_context_limit,
        context_min_score=settings.chat_context_min_score,
        history_prompt_limit=settings.history_prompt_limit,
        history_hydrate_limit=settings.history_hydrate_limit,
    )

    logger.info("Application startup complete | chat_model={}", settings.chat_model)
    yield

    chat_store.close()
    knowledge_store.close()
    await client.close()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Course Assistant",
    description="Study chat grounded in indexed course content.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(knowledge_router)
app.include_router(chat_router)


@app.get("/health")
async def health():
    """Simple liveness / readiness check."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("course_assistant.main:app", host="0.0.0.0", port=8000, reload=True)
