"""Tests for the repository selection helpers."""

from app.conversations.repository import (
    InMemoryConversationRepository,
    PostgresConversationRepository,
)
from app.core import db
from conftest import run


def test_database_url_reads_environment_each_call(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert db.database_url() is None
    monkeypatch.setenv("DATABASE_URL", "postgresql://example/db")
    assert db.database_url() == "postgresql://example/db"
    monkeypatch.setenv("DATABASE_URL", "")
    assert db.database_url() is None


def test_repository_context_falls_back_to_memory(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    fallback = InMemoryConversationRepository()

    async def use():
        async with db.repository_context(fallback) as repository:
            return repository

    assert run(use()) is fallback


def test_repository_context_closes_postgres_connection(monkeypatch):
    closed = []

    class FakeConnection:
        async def close(self):
            closed.append(True)

    async def fake_connect(url):
        assert url == "postgresql://example/db"
        return FakeConnection()

    monkeypatch.setenv("DATABASE_URL", "postgresql://example/db")
    monkeypatch.setattr(db, "connect", fake_connect)

    async def use():
        async with db.repository_context(InMemoryConversationRepository()) as repository:
            assert isinstance(repository, PostgresConversationRepository)

    run(use())
    assert closed == [True]
