"""Command-line tools for managing the course knowledge base."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from course_assistant.application.exceptions import CourseAssistantError
from course_assistant.application.validation import is_valid_identifier
from course_assistant.config import get_settings
from course_assistant.infrastructure.knowledge_store import KnowledgeStore
from course_assistant.logging_config import setup_logging
from course_assistant.main import build_knowledge_service, build_openai_client


async def _index(course_id: str, content: str, source_file: str) -> int:
    settings = get_settings()
    settings.validate_runtime()
    client = build_openai_client(settings)
    store = KnowledgeStore(settings.db_path)
    store.connect()
    try:
        service = build_knowledge_service(settings, client, store)
        result = await service.index_course_content(course_id, content, source_file)
        return result.chunks_created
    finally:
        store.close()
        await client.close()


async def _search(query: str, course_id: str | None, limit: int, min_score: float):
    settings = get_settings()
    settings.validate_runtime()
    client = build_openai_client(settings)
    store = KnowledgeStore(settings.db_path)
    store.connect()
    try:
        service = build_knowledge_service(settings, client, store)
        return await service.search_similar(query, course_id=course_id, limit=limit, min_score=min_score)
    finally:
        store.close()
        await client.close()


def _open_store() -> KnowledgeStore:
    store = KnowledgeStore(get_settings().db_path)
    store.connect()
    return store


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL from the environment.")
def cli(log_level: str | None):
    """Course assistant knowledge-base tools."""
    setup_logging(get_settings(), level=log_level)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--course-id", required=True, help="Course the content belongs to.")
@click.option("--source", default=None, help="Source name to store (defaults to the file name).")
def index(file: Path, course_id: str, source: str | None):
    """Index a text file into a course, replacing its previous version."""
    source_file = source or file.name
    content = file.read_text(encoding="utf-8")
    click.echo(f"Indexing {file} ({len(content)} characters) into course {course_id}...")

    try:
        created = asyncio.run(_index(course_id, content, source_file))
    except (CourseAssistantError, ValueError) as e:
        click.echo(f"✗ Indexing failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ {created} chunks created from {source_file}")


@cli.command()
@click.argument("query")
@click.option("--course-id", default=None, help="Restrict the search to one course.")
@click.option("--limit", default=5, show_default=True, type=click.IntRange(1, 20))
@click.option("--min-score", default=0.7, show_default=True, type=click.FloatRange(0.0, 1.0))
def search(query: str, course_id: str | None, limit: int, min_score: float):
    """Run a semantic search against the indexed chunks."""
    try:
        results = asyncio.run(_search(query, course_id, limit, min_score))
    except (CourseAssistantError, ValueError) as e:
        click.echo(f"✗ Search failed: {e}", err=True)
        sys.exit(1)

    if not results:
        click.echo("No results above the score threshold.")
        return

    for i, result in enumerate(results, start=1):
        preview = result.content[:120].replace("\n", " ")
        click.echo(f"[{i}] {result.score:.3f} | course={result.course_id} | {preview}")


@cli.command()
def stats():
    """Show knowledge-base statistics."""
    store = _open_store()
    try:
        result = store.get_stats()
    finally:
        store.close()

    click.echo(f"Total chunks: {result['total_chunks']}")
    click.echo(f"Courses covered: {result['courses_covered']}")


@cli.command("delete-course")
@click.argument("course_id")
@click.confirmation_option(prompt="Delete every indexed chunk of this course?")
def delete_course(course_id: str):
    """Remove all indexed chunks of a course."""
    if not is_valid_identifier(course_id):
        click.echo(f"✗ Invalid course id: {course_id}", err=True)
        sys.exit(1)

    store = _open_store()
    try:
        deleted = store.delete_by_course(course_id)
    finally:
        store.close()

    click.echo(f"✓ Deleted {deleted} chunks for course {course_id}")


if __name__ == "__main__":
    cli()
