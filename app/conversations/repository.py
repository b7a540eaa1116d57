"""Persistence for conversations and their messages."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from . import schemas
from .errors import ConversationNotFoundError


class ConversationRepository(Protocol):
    """Abstraction for persisting conversation state.

    Implementations must provide per-row atomic writes and must never hold
    more than one ``active`` conversation for the same phone number.
    """

    async def find_active_by_phone(self, phone: str) -> Optional[schemas.Conversation]: ...

    async def create_conversation(
        self,
        phone: str,
        name: Optional[str],
        platform: schemas.Platform,
        customer_id: Optional[int] = None,
    ) -> schemas.Conversation: ...

    async def append_message(
        self,
        conversation_id: int,
        content: str,
        sender: schemas.Sender,
        channel: schemas.Platform,
    ) -> schemas.Message: ...

    async def update_control_mode(
        self,
        conversation_id: int,
        mode: schemas.ControlMode,
        agent: Optional[str],
    ) -> schemas.Conversation: ...

    async def update_behavior_settings(
        self, conversation_id: int, settings: Optional[schemas.BehaviorSettings]
    ) -> schemas.Conversation: ...

    async def mark_needs_attention(
        self, conversation_id: int, reason: str
    ) -> schemas.Conversation: ...

    async def record_agent_activity(self, conversation_id: int) -> schemas.Conversation: ...

    async def close(self, conversation_id: int) -> schemas.Conversation: ...

    async def get_conversation(
        self, conversation_id: int
    ) -> Optional[schemas.ConversationDetail]: ...

    async def list_conversations(
        self, status_filter: schemas.StatusFilter = "all"
    ) -> List[schemas.ConversationSummary]: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryConversationRepository(ConversationRepository):
    """Process-local store used for development and tests."""

    def __init__(self) -> None:
        self._conversations: Dict[int, schemas.Conversation] = {}
        self._messages: Dict[int, List[schemas.Message]] = {}
        self._conversation_id_seq = 1
        self._message_id_seq = 1

    async def find_active_by_phone(self, phone: str) -> Optional[schemas.Conversation]:
        for conversation in self._conversations.values():
            if conversation.customer_phone == phone and conversation.status == "active":
                return conversation.model_copy(deep=True)
        return None

    async def create_conversation(
        self,
        phone: str,
        name: Optional[str],
        platform: schemas.Platform,
        customer_id: Optional[int] = None,
    ) -> schemas.Conversation:
        existing = await self.find_active_by_phone(phone)
        if existing:
            return existing
        conversation_id = self._conversation_id_seq
        self._conversation_id_seq += 1
        now = _now()
        conversation = schemas.Conversation(
            id=conversation_id,
            customer_id=customer_id,
            customer_phone=phone,
            customer_name=name,
            platform=platform,
            control_mode="auto",
            status="active",
            last_message_time=now,
            created_at=now,
        )
        self._conversations[conversation_id] = conversation
        self._messages[conversation_id] = []
        return conversation.model_copy(deep=True)

    async def append_message(
        self,
        conversation_id: int,
        content: str,
        sender: schemas.Sender,
        channel: schemas.Platform,
    ) -> schemas.Message:
        conversation = self._require(conversation_id)
        history = self._messages[conversation_id]
        timestamp = _now()
        if history and timestamp <= history[-1].timestamp:
            timestamp = history[-1].timestamp + timedelta(microseconds=1)
        message = schemas.Message(
            id=self._message_id_seq,
            conversation_id=conversation_id,
            content=content,
            sender=sender,
            from_customer=sender == "customer",
            channel=channel,
            timestamp=timestamp,
        )
        self._message_id_seq += 1
        history.append(message)
        conversation.last_message_time = max(conversation.last_message_time, timestamp)
        return message.model_copy()

    async def update_control_mode(
        self,
        conversation_id: int,
        mode: schemas.ControlMode,
        agent: Optional[str],
    ) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        conversation.control_mode = mode
        conversation.assigned_agent = agent
        if mode == "manual":
            conversation.manual_mode_started_at = _now()
        elif mode == "auto":
            conversation.needs_human_attention = False
        return conversation.model_copy(deep=True)

    async def update_behavior_settings(
        self, conversation_id: int, settings: Optional[schemas.BehaviorSettings]
    ) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        conversation.behavior_settings = settings.model_copy() if settings else None
        return conversation.model_copy(deep=True)

    async def mark_needs_attention(
        self, conversation_id: int, reason: str
    ) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        conversation.needs_human_attention = True
        conversation.handoff_reason = reason
        conversation.handoff_requested_at = _now()
        return conversation.model_copy(deep=True)

    async def record_agent_activity(self, conversation_id: int) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        conversation.last_agent_activity = _now()
        return conversation.model_copy(deep=True)

    async def close(self, conversation_id: int) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        conversation.status = "closed"
        conversation.resolved = True
        return conversation.model_copy(deep=True)

    async def get_conversation(
        self, conversation_id: int
    ) -> Optional[schemas.ConversationDetail]:
        conversation = self._conversations.get(conversation_id)
        if not conversation:
            return None
        detail = schemas.ConversationDetail(**conversation.model_dump())
        detail.messages = sorted(
            (m.model_copy() for m in self._messages[conversation_id]),
            key=lambda m: (m.timestamp, m.id),
        )
        return detail

    async def list_conversations(
        self, status_filter: schemas.StatusFilter = "all"
    ) -> List[schemas.ConversationSummary]:
        items: List[schemas.ConversationSummary] = []
        for conversation in self._conversations.values():
            if not _matches_filter(conversation, status_filter):
                continue
            history = self._messages[conversation.id]
            summary = schemas.ConversationSummary(**conversation.model_dump())
            summary.message_count = len(history)
            summary.latest_message = history[-1].model_copy() if history else None
            items.append(summary)
        items.sort(key=lambda c: c.last_message_time, reverse=True)
        return items

    def _require(self, conversation_id: int) -> schemas.Conversation:
        conversation = self._conversations.get(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(conversation_id)
        return conversation


def _matches_filter(
    conversation: schemas.Conversation, status_filter: str
) -> bool:
    if status_filter == "closed":
        return conversation.status == "closed"
    if status_filter == "manual":
        return conversation.status == "active" and conversation.control_mode == "manual"
    return conversation.status == "active"


_FILTER_CLAUSES = {
    "all": "status = 'active'",
    "manual": "status = 'active' AND control_mode = 'manual'",
    "closed": "status = 'closed'",
}


class PostgresConversationRepository(ConversationRepository):
    """PostgreSQL implementation of :class:`ConversationRepository`.

    Expects an autocommit connection so every statement is its own
    transaction.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    # Utility -----------------------------------------------------------------
    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    async def _update_returning(
        self, conversation_id: int, assignments: str, params: List[Any]
    ) -> schemas.Conversation:
        query = f"UPDATE conversations SET {assignments} WHERE id = %s RETURNING *"
        async with self._cursor() as cur:
            await cur.execute(query, (*params, conversation_id))
            row = await cur.fetchone()
        if not row:
            raise ConversationNotFoundError(conversation_id)
        return schemas.Conversation(**row)

    # Conversation operations --------------------------------------------------
    async def find_active_by_phone(self, phone: str) -> Optional[schemas.Conversation]:
        async with self._cursor() as cur:
            await cur.execute(
                """
                SELECT * FROM conversations
                WHERE customer_phone = %s AND status = 'active'
                LIMIT 1
                """,
                (phone,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        return schemas.Conversation(**row)

    async def create_conversation(
        self,
        phone: str,
        name: Optional[str],
        platform: schemas.Platform,
        customer_id: Optional[int] = None,
    ) -> schemas.Conversation:
        async with self._cursor() as cur:
            await cur.execute(
                """
                INSERT INTO conversations
                    (customer_id, customer_phone, customer_name, platform, control_mode, status)
                VALUES (%s, %s, %s, %s, 'auto', 'active')
                ON CONFLICT (customer_phone) WHERE status = 'active' DO NOTHING
                RETURNING *
                """,
                (customer_id, phone, name, platform),
            )
            row = await cur.fetchone()
        if row:
            return schemas.Conversation(**row)
        # Lost a create race against a concurrent request for the same phone.
        existing = await self.find_active_by_phone(phone)
        if existing is None:  # pragma: no cover - requires a close mid-race
            raise RuntimeError(f"Could not create conversation for {phone}")
        return existing

    async def append_message(
        self,
        conversation_id: int,
        content: str,
        sender: schemas.Sender,
        channel: schemas.Platform,
    ) -> schemas.Message:
        async with self._cursor() as cur:
            try:
                await cur.execute(
                    """
                    INSERT INTO messages
                        (conversation_id, content, sender, from_customer, channel)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (conversation_id, content, sender, sender == "customer", channel),
                )
            except pg_errors.ForeignKeyViolation as exc:
                raise ConversationNotFoundError(conversation_id) from exc
            row = await cur.fetchone()
            await cur.execute(
                """
                UPDATE conversations
                SET last_message_time = GREATEST(last_message_time, %s)
                WHERE id = %s
                """,
                (row["timestamp"], conversation_id),
            )
        return schemas.Message(**row)

    async def update_control_mode(
        self,
        conversation_id: int,
        mode: schemas.ControlMode,
        agent: Optional[str],
    ) -> schemas.Conversation:
        assignments = "control_mode = %s, assigned_agent = %s"
        if mode == "manual":
            assignments += ", manual_mode_started_at = now()"
        elif mode == "auto":
            assignments += ", needs_human_attention = false"
        return await self._update_returning(conversation_id, assignments, [mode, agent])

    async def update_behavior_settings(
        self, conversation_id: int, settings: Optional[schemas.BehaviorSettings]
    ) -> schemas.Conversation:
        value = Jsonb(settings.model_dump()) if settings else None
        return await self._update_returning(
            conversation_id, "behavior_settings = %s", [value]
        )

    async def mark_needs_attention(
        self, conversation_id: int, reason: str
    ) -> schemas.Conversation:
        return await self._update_returning(
            conversation_id,
            "needs_human_attention = true, handoff_reason = %s, handoff_requested_at = now()",
            [reason],
        )

    async def record_agent_activity(self, conversation_id: int) -> schemas.Conversation:
        return await self._update_returning(
            conversation_id, "last_agent_activity = now()", []
        )

    async def close(self, conversation_id: int) -> schemas.Conversation:
        return await self._update_returning(
            conversation_id, "status = 'closed', resolved = true", []
        )

    async def get_conversation(
        self, conversation_id: int
    ) -> Optional[schemas.ConversationDetail]:
        async with self._cursor() as cur:
            await cur.execute(
                "SELECT * FROM conversations WHERE id = %s", (conversation_id,)
            )
            convo = await cur.fetchone()
            if not convo:
                return None
            await cur.execute(
                """
                SELECT * FROM messages
                WHERE conversation_id = %s
                ORDER BY timestamp ASC, id ASC
                """,
                (conversation_id,),
            )
            messages = [schemas.Message(**row) for row in await cur.fetchall()]
        detail = schemas.ConversationDetail(**convo)
        detail.messages = messages
        return detail

    async def list_conversations(
        self, status_filter: schemas.StatusFilter = "all"
    ) -> List[schemas.ConversationSummary]:
        where = _FILTER_CLAUSES.get(status_filter, _FILTER_CLAUSES["all"])
        async with self._cursor() as cur:
            await cur.execute(
                f"SELECT * FROM conversations WHERE {where} "
                "ORDER BY last_message_time DESC NULLS LAST, id DESC"
            )
            rows = await cur.fetchall()
            ids = [row["id"] for row in rows]
            counts: Dict[int, int] = {}
            latest: Dict[int, schemas.Message] = {}
            if ids:
                await cur.execute(
                    """
                    SELECT conversation_id, COUNT(*) AS message_count
                    FROM messages WHERE conversation_id = ANY(%s)
                    GROUP BY conversation_id
                    """,
                    (ids,),
                )
                counts = {
                    r["conversation_id"]: r["message_count"] for r in await cur.fetchall()
                }
                await cur.execute(
                    """
                    SELECT DISTINCT ON (conversation_id) * FROM messages
                    WHERE conversation_id = ANY(%s)
                    ORDER BY conversation_id, timestamp DESC, id DESC
                    """,
                    (ids,),
                )
                latest = {
                    r["conversation_id"]: schemas.Message(**r)
                    for r in await cur.fetchall()
                }
        items = []
        for row in rows:
            summary = schemas.ConversationSummary(**row)
            summary.message_count = counts.get(row["id"], 0)
            summary.latest_message = latest.get(row["id"])
            items.append(summary)
        return items
