"""Memory — per-user working memory and per-thread conversation history.

Working memory → one markdown health profile per resource (user), rewritten by
                 the agent through its update_working_memory tool.
Messages       → every user / assistant message, keyed by thread (chat).
Semantic recall → optional embeddings of messages in a sqlite-vec table, so
                 older but relevant exchanges can be pulled into the prompt.
"""

from __future__ import annotations

import os
import struct
from datetime import datetime, timezone

import aiosqlite
import sqlite_vec
from openai import AsyncOpenAI

from hygieia.config import Config
from hygieia.events import make_logger
from hygieia.prompts import WORKING_MEMORY_TEMPLATE
from hygieia.tracing import get_tracer

log = make_logger("hygieia.memory")
tracer = get_tracer("hygieia.memory")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _serialize_embedding(vec: list[float]) -> bytes:
    """Pack a float list into a compact binary blob for sqlite-vec."""
    return struct.pack(f"{len(vec)}f", *vec)


def _make_openai_client(base_url: str = "") -> AsyncOpenAI:
    """Create an AsyncOpenAI-compatible embeddings client.

    An explicit base_url is paired with OPENROUTER_API_KEY (or OPENAI_API_KEY);
    otherwise OpenAI is used directly.
    """
    if base_url:
        api_key = os.environ.get("OPENROUTER_API_KEY") or os.environ.get("OPENAI_API_KEY")
        return AsyncOpenAI(base_url=base_url, api_key=api_key)
    return AsyncOpenAI(api_key=os.environ.get("OPENAI_API_KEY"))


async def _embed(text: str, model: str, client: AsyncOpenAI) -> list[float]:
    """Get an embedding vector via an OpenAI-compatible API."""
    with tracer.start_as_current_span("embed", attributes={"model": model, "text_len": len(text)}):
        resp = await client.embeddings.create(model=model, input=[text])
        return list(resp.data[0].embedding)


def _row_to_message(row: aiosqlite.Row | tuple) -> dict[str, str | int]:
    return {
        "id": row[0],
        "role": row[1],
        "content": row[2],
        "timestamp": row[3],
    }


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------

class MemoryStore:
    """Working memory + thread history backed by a single SQLite database."""

    def __init__(self, cfg: Config) -> None:
        self.db_path = cfg.memory.db_path
        self.last_messages = cfg.memory.last_messages
        self.semantic_enabled = cfg.memory.semantic_recall
        self.top_k = cfg.memory.top_k
        self.message_range = cfg.memory.message_range
        self.embedding_model = cfg.memory.embedding_model
        self._embedding_base_url = cfg.memory.embedding_base_url
        self._embed_client: AsyncOpenAI | None = None
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and create tables."""
        self._db = await aiosqlite.connect(self.db_path, check_same_thread=False)

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS messages (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                thread_id   TEXT NOT NULL,
                resource_id TEXT NOT NULL DEFAULT '',
                role        TEXT NOT NULL,
                content     TEXT NOT NULL,
                timestamp   TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_thread
                ON messages (thread_id, id);

            CREATE TABLE IF NOT EXISTS working_memory (
                resource_id TEXT PRIMARY KEY,
                content     TEXT NOT NULL,
                updated     TEXT NOT NULL
            );
        """)
        await self._db.commit()

        if self.semantic_enabled:
            await self._init_vectors()

    async def _init_vectors(self) -> None:
        """Load sqlite-vec and create the vec0 table, sized from a probe embedding."""
        assert self._db
        self._db._connection.enable_load_extension(True)
        sqlite_vec.load(self._db._connection)  # type: ignore[arg-type]
        self._db._connection.enable_load_extension(False)
        self._embed_client = _make_openai_client(self._embedding_base_url)

        try:
            await self._db.execute("SELECT * FROM message_vec LIMIT 0")
        except aiosqlite.OperationalError:
            test_vec = await _embed("hello", self.embedding_model, self._embed_client)
            await self._db.execute(
                f"CREATE VIRTUAL TABLE message_vec USING vec0("
                f"  id INTEGER PRIMARY KEY,"
                f"  embedding float[{len(test_vec)}]"
                f")"
            )
            await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()

    # ------------------------------------------------------------------
    # Working memory
    # ------------------------------------------------------------------

    async def get_working_memory(self, resource_id: str) -> str:
        """Return the user's profile, or the blank template for a new user."""
        with tracer.start_as_current_span("memory.get_working_memory", attributes={"resource_id": resource_id}):
            assert self._db
            cursor = await self._db.execute(
                "SELECT content FROM working_memory WHERE resource_id = ?", (resource_id,)
            )
            row = await cursor.fetchone()
            return row[0] if row else WORKING_MEMORY_TEMPLATE

    async def update_working_memory(self, resource_id: str, content: str) -> None:
        """Overwrite the user's profile."""
        with tracer.start_as_current_span("memory.update_working_memory", attributes={"resource_id": resource_id}):
            assert self._db
            now = datetime.now(timezone.utc).isoformat()
            await self._db.execute(
                "INSERT INTO working_memory (resource_id, content, updated) VALUES (?, ?, ?) "
                "ON CONFLICT(resource_id) DO UPDATE SET "
                "  content = excluded.content, updated = excluded.updated",
                (resource_id, content, now),
            )
            await self._db.commit()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def save_message(
        self, thread_id: str, resource_id: str, role: str, content: str
    ) -> int:
        """Append a message to the thread. Returns the row id."""
        with tracer.start_as_current_span("memory.save_message", attributes={"thread_id": thread_id, "role": role}) as span:
            assert self._db
            now = datetime.now(timezone.utc).isoformat()
            cursor = await self._db.execute(
                "INSERT INTO messages (thread_id, resource_id, role, content, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (thread_id, resource_id, role, content, now),
            )
            await self._db.commit()
            row_id = cursor.lastrowid or 0
            span.set_attribute("row_id", row_id)

            if self._embed_client is not None and content.strip():
                try:
                    vec = await _embed(content, self.embedding_model, self._embed_client)
                    await self._db.execute(
                        "INSERT INTO message_vec (id, embedding) VALUES (?, ?)",
                        (row_id, _serialize_embedding(vec)),
                    )
                    await self._db.commit()
                except Exception as exc:
                    log.warning("embedding message %d failed, it won't be recalled: %s", row_id, exc)
            return row_id

    async def recent_messages(self, thread_id: str, n: int | None = None) -> list[dict[str, str | int]]:
        """Return the last N messages of a thread, oldest first."""
        n = self.last_messages if n is None else n
        with tracer.start_as_current_span("memory.recent_messages", attributes={"thread_id": thread_id, "n": n}) as span:
            assert self._db
            cursor = await self._db.execute(
                "SELECT id, role, content, timestamp FROM messages "
                "WHERE thread_id = ? ORDER BY id DESC LIMIT ?",
                (thread_id, n),
            )
            rows = await cursor.fetchall()
            result = [_row_to_message(row) for row in reversed(rows)]
            span.set_attribute("result_count", len(result))
            return result

    async def message_count(self, thread_id: str) -> int:
        assert self._db
        cursor = await self._db.execute(
            "SELECT COUNT(*) FROM messages WHERE thread_id = ?", (thread_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    # ------------------------------------------------------------------
    # Semantic recall
    # ------------------------------------------------------------------

    async def semantic_recall(self, thread_id: str, query: str) -> list[dict[str, str | int]]:
        """Messages of this thread similar to ``query``, with their neighbours.

        Returns [] when semantic recall is off or embedding fails.
        """
        if self._embed_client is None or not query.strip():
            return []
        with tracer.start_as_current_span("memory.semantic_recall", attributes={"thread_id": thread_id, "k": self.top_k}) as span:
            assert self._db
            try:
                vec = await _embed(query, self.embedding_model, self._embed_client)
            except Exception as exc:
                log.warning("semantic recall skipped, embedding failed: %s", exc)
                return []

            # vec0 KNN runs over every thread; over-fetch, then keep ours.
            cursor = await self._db.execute(
                """
                SELECT m.id
                FROM message_vec AS v
                JOIN messages AS m ON m.id = v.id
                WHERE v.embedding MATCH ?
                  AND k = ?
                  AND m.thread_id = ?
                ORDER BY v.distance
                """,
                (_serialize_embedding(vec), self.top_k * 4, thread_id),
            )
            match_ids = [row[0] for row in await cursor.fetchall()][: self.top_k]

            found: dict[int, dict[str, str | int]] = {}
            for match_id in match_ids:
                for row in await self._neighbours(thread_id, match_id):
                    found[row["id"]] = row  # type: ignore[index]
            span.set_attribute("result_count", len(found))
            return [found[key] for key in sorted(found)]

    async def _neighbours(self, thread_id: str, message_id: int) -> list[dict[str, str | int]]:
        assert self._db
        before = await self._db.execute(
            "SELECT id, role, content, timestamp FROM messages "
            "WHERE thread_id = ? AND id <= ? ORDER BY id DESC LIMIT ?",
            (thread_id, message_id, self.message_range + 1),
        )
        after = await self._db.execute(
            "SELECT id, role, content, timestamp FROM messages "
            "WHERE thread_id = ? AND id > ? ORDER BY id ASC LIMIT ?",
            (thread_id, message_id, self.message_range),
        )
        rows = list(await before.fetchall()) + list(await after.fetchall())
        return [_row_to_message(row) for row in rows]
