import json
import logging
import os
import sqlite3
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from fastapi.encoders import jsonable_encoder


DB_PATH = Path("data/chat/messages.db")
logger = logging.getLogger("chatstream.message_store")
_active_db_path: Path | None = None

T = TypeVar("T")


def _default_db_path() -> Path:
    custom_path = os.getenv("CHATSTREAM_CHAT_DB_PATH", "").strip()
    if custom_path:
        return Path(custom_path)
    return DB_PATH


def _fallback_db_path() -> Path:
    return Path(tempfile.gettempdir()) / "chatstream" / "messages.db"


def _get_active_db_path() -> Path:
    global _active_db_path
    if _active_db_path is not None:
        return _active_db_path
    _active_db_path = _default_db_path()
    return _active_db_path


def _set_fallback_db_path() -> Path:
    global _active_db_path
    _active_db_path = _fallback_db_path()
    return _active_db_path


def reset_db_path() -> None:
    """Forget the resolved path so the next call re-reads CHATSTREAM_CHAT_DB_PATH."""
    global _active_db_path
    _active_db_path = None


def _is_disk_io_error(exc: sqlite3.OperationalError) -> bool:
    return "disk i/o error" in str(exc).lower()


def _now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _create_tables(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chats (
                chat_id TEXT PRIMARY KEY,
                is_chat_loading INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                message_id TEXT NOT NULL UNIQUE,
                chat_id TEXT NOT NULL,
                is_streaming INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                record_json TEXT NOT NULL,
                FOREIGN KEY(chat_id) REFERENCES chats(chat_id)
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_chat_messages_chat_seq ON chat_messages(chat_id, seq)")
        conn.commit()


def init_db() -> None:
    db_path = _get_active_db_path()
    try:
        _create_tables(db_path)
    except sqlite3.OperationalError as exc:
        if not _is_disk_io_error(exc):
            raise
        fallback = _set_fallback_db_path()
        logger.warning("Message store path not writable, falling back to temp dir: %s", fallback)
        _create_tables(fallback)


def _with_connection(op: Callable[[sqlite3.Connection], T]) -> T:
    init_db()
    db_path = _get_active_db_path()
    try:
        with sqlite3.connect(db_path) as conn:
            conn.row_factory = sqlite3.Row
            return op(conn)
    except sqlite3.OperationalError as exc:
        if not _is_disk_io_error(exc):
            raise
        fallback = _set_fallback_db_path()
        logger.warning("Message store access failed, falling back to temp dir: %s", fallback)
        _create_tables(fallback)
        with sqlite3.connect(fallback) as conn:
            conn.row_factory = sqlite3.Row
            return op(conn)


def _ensure_chat(conn: sqlite3.Connection, chat_id: str, now: str) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO chats (chat_id, is_chat_loading, created_at, updated_at) VALUES (?, 0, ?, ?)",
        (chat_id, now, now),
    )


def _encode(record: dict[str, Any]) -> str:
    return json.dumps(jsonable_encoder(record), ensure_ascii=False)


def append_message(chat_id: str, record: dict[str, Any], *, is_streaming: bool | None = None) -> dict[str, Any]:
    """Append a message (user message or streaming placeholder) to a chat."""

    message_id = f"msg_{uuid.uuid4().hex}"
    now = _now_utc()
    streaming = bool(record.get("isStreaming")) if is_streaming is None else is_streaming
    stored = {**record, "id": message_id, "isStreaming": streaming}

    def _op(conn: sqlite3.Connection) -> None:
        _ensure_chat(conn, chat_id, now)
        conn.execute(
            """
            INSERT INTO chat_messages (message_id, chat_id, is_streaming, created_at, record_json)
            VALUES (?, ?, ?, ?, ?)
            """,
            (message_id, chat_id, int(streaming), now, _encode(stored)),
        )
        if streaming:
            conn.execute(
                "UPDATE chats SET is_chat_loading=1, updated_at=? WHERE chat_id=?",
                (now, chat_id),
            )
        else:
            conn.execute("UPDATE chats SET updated_at=? WHERE chat_id=?", (now, chat_id))
        conn.commit()

    _with_connection(_op)
    return stored


def save_final_message(chat_id: str, record: dict[str, Any], *, is_chat_loading: bool = False) -> dict[str, Any]:
    """
    Store a finished message. The most recent ``isStreaming`` placeholder of the
    chat is replaced in place; without one the message is appended.
    """

    now = _now_utc()
    stored = {**record, "isStreaming": False}

    def _op(conn: sqlite3.Connection) -> dict[str, Any]:
        _ensure_chat(conn, chat_id, now)
        row = conn.execute(
            """
            SELECT message_id FROM chat_messages
            WHERE chat_id = ? AND is_streaming = 1
            ORDER BY seq DESC
            LIMIT 1
            """,
            (chat_id,),
        ).fetchone()

        if row is not None:
            message_id = row["message_id"]
            result = {**stored, "id": message_id}
            conn.execute(
                "UPDATE chat_messages SET is_streaming=0, record_json=? WHERE message_id=?",
                (_encode(result), message_id),
            )
            replaced = True
        else:
            message_id = f"msg_{uuid.uuid4().hex}"
            result = {**stored, "id": message_id}
            conn.execute(
                """
                INSERT INTO chat_messages (message_id, chat_id, is_streaming, created_at, record_json)
                VALUES (?, ?, 0, ?, ?)
                """,
                (message_id, chat_id, now, _encode(result)),
            )
            replaced = False

        conn.execute(
            "UPDATE chats SET is_chat_loading=?, updated_at=? WHERE chat_id=?",
            (int(is_chat_loading), now, chat_id),
        )
        conn.commit()
        logger.info(
            "Saved final message %s for chat %s (%s)",
            message_id,
            chat_id,
            "replaced placeholder" if replaced else "appended",
        )
        return result

    return _with_connection(_op)


def list_messages(chat_id: str, limit: int = 100) -> list[dict[str, Any]]:
    def _op(conn: sqlite3.Connection) -> list[sqlite3.Row]:
        return conn.execute(
            """
            SELECT record_json FROM chat_messages
            WHERE chat_id = ?
            ORDER BY seq ASC
            LIMIT ?
            """,
            (chat_id, limit),
        ).fetchall()

    rows = _with_connection(_op)
    results: list[dict[str, Any]] = []
    for row in rows:
        try:
            results.append(json.loads(row["record_json"]))
        except (json.JSONDecodeError, TypeError):
            logger.warning("Skipping unreadable message row in chat %s", chat_id)
    return results


def get_chat(chat_id: str) -> dict[str, Any] | None:
    def _op(conn: sqlite3.Connection) -> sqlite3.Row | None:
        return conn.execute(
            "SELECT chat_id, is_chat_loading, created_at, updated_at FROM chats WHERE chat_id = ?",
            (chat_id,),
        ).fetchone()

    row = _with_connection(_op)
    if row is None:
        return None
    return {
        "chat_id": row["chat_id"],
        "is_chat_loading": bool(row["is_chat_loading"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def set_chat_loading(chat_id: str, is_chat_loading: bool) -> None:
    now = _now_utc()

    def _op(conn: sqlite3.Connection) -> None:
        _ensure_chat(conn, chat_id, now)
        conn.execute(
            "UPDATE chats SET is_chat_loading=?, updated_at=? WHERE chat_id=?",
            (int(is_chat_loading), now, chat_id),
        )
        conn.commit()

    _with_connection(_op)
