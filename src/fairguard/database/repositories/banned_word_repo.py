"""Persistent storage for black- and graylisted words."""

from __future__ import annotations

from typing import Iterable, List, Optional

import aiosqlite

from fairguard.datatypes.moderation_datatypes import BannedWord, ListType


class BannedWordRepo:
    """Low-level CRUD for the ``banned_words`` table.

    Reads return words in insertion order (``rowid``), which is the order the
    graylist matcher walks.
    """

    @staticmethod
    async def count(conn: aiosqlite.Connection) -> int:
        cursor = await conn.execute("SELECT COUNT(*) FROM banned_words")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def list_all(conn: aiosqlite.Connection) -> List[BannedWord]:
        cursor = await conn.execute("SELECT word, list_type FROM banned_words ORDER BY rowid ASC")
        return [BannedWord(row["word"], ListType(row["list_type"])) for row in await cursor.fetchall()]

    @staticmethod
    async def get(conn: aiosqlite.Connection, word: str) -> Optional[BannedWord]:
        cursor = await conn.execute("SELECT word, list_type FROM banned_words WHERE word = ?", (word,))
        row = await cursor.fetchone()
        return BannedWord(row["word"], ListType(row["list_type"])) if row else None

    @staticmethod
    async def insert(conn: aiosqlite.Connection, word: str, list_type: ListType, now: int) -> None:
        await conn.execute(
            "INSERT INTO banned_words (word, list_type, created_at) VALUES (?, ?, ?)",
            (word, list_type.value, now),
        )

    @staticmethod
    async def seed(conn: aiosqlite.Connection, words: Iterable[str], list_type: ListType, now: int) -> None:
        await conn.executemany(
            "INSERT OR IGNORE INTO banned_words (word, list_type, created_at) VALUES (?, ?, ?)",
            [(word, list_type.value, now) for word in words],
        )

    @staticmethod
    async def update_list_type(conn: aiosqlite.Connection, word: str, list_type: ListType) -> None:
        await conn.execute("UPDATE banned_words SET list_type = ? WHERE word = ?", (list_type.value, word))

    @staticmethod
    async def delete(conn: aiosqlite.Connection, word: str) -> bool:
        cursor = await conn.execute("DELETE FROM banned_words WHERE word = ?", (word,))
        return cursor.rowcount > 0
