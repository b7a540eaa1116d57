"""Database helpers for the conversation store."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import psycopg

from ..conversations.repository import (
    ConversationRepository,
    InMemoryConversationRepository,
    PostgresConversationRepository,
)

logger = logging.getLogger(__name__)


def database_url() -> str | None:
    return os.getenv("DATABASE_URL") or None


async def connect(url: str) -> psycopg.AsyncConnection:
    """Open an autocommit connection so each statement commits on its own."""

    try:
        return await psycopg.AsyncConnection.connect(url, autocommit=True)
    except Exception:
        logger.exception("Failed to connect to the conversation database")
        raise


@asynccontextmanager
async def repository_context(
    fallback: InMemoryConversationRepository,
) -> AsyncIterator[ConversationRepository]:
    """Yield a Postgres repository when ``DATABASE_URL`` is set.

    Without a database the process-local ``fallback`` store is used, which
    is only suitable for development and tests.
    """

    url = database_url()
    if not url:
        yield fallback
        return
    conn = await connect(url)
    try:
        yield PostgresConversationRepository(conn)
    finally:
        await conn.close()
