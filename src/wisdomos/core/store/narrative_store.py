"""NarrativeStore SQLite implementation -- chapters and entry links"""

import asyncio

import aiosqlite

from ..exceptions import NotFoundError
from ..models.narrative import Chapter, ChapterLink
from .columns import dumps, loads, parse_ts, ts
from .transaction import write_transaction


class SqliteNarrativeStore:
    """NarrativeStore backed by SQLite"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def get_or_create_chapter(self, chapter: Chapter) -> tuple[Chapter, bool]:
        """Chapter of (user, era, area), inserting ``chapter`` when none exists

        Returns:
            (chapter, created)
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO chapters (chapter_id, user_id, era, area_id, title,
                                                summary, themes, coherence, entry_count,
                                                created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chapter.chapter_id,
                    chapter.user_id,
                    chapter.era,
                    chapter.area_id,
                    chapter.title,
                    chapter.summary,
                    dumps(chapter.themes),
                    chapter.coherence,
                    chapter.entry_count,
                    ts(chapter.created_at),
                    ts(chapter.updated_at),
                ),
            )
            created = cursor.rowcount > 0
        stored = await self.find_chapter(chapter.user_id, chapter.era, chapter.area_id)
        assert stored is not None
        return stored, created

    async def find_chapter(self, user_id: str, era: str, area_id: str) -> Chapter | None:
        cursor = await self._conn.execute(
            "SELECT * FROM chapters WHERE user_id = ? AND era = ? AND area_id = ?",
            (user_id, era, area_id),
        )
        row = await cursor.fetchone()
        return self._row_to_chapter(row) if row else None

    async def get_chapter(self, chapter_id: str) -> Chapter | None:
        cursor = await self._conn.execute(
            "SELECT * FROM chapters WHERE chapter_id = ?", (chapter_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_chapter(row) if row else None

    async def find_by_user(self, user_id: str) -> list[Chapter]:
        cursor = await self._conn.execute(
            "SELECT * FROM chapters WHERE user_id = ? ORDER BY era, area_id", (user_id,)
        )
        return [self._row_to_chapter(row) for row in await cursor.fetchall()]

    async def update_chapter(self, chapter: Chapter) -> Chapter:
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                UPDATE chapters
                SET title = ?, summary = ?, themes = ?, coherence = ?, entry_count = ?,
                    updated_at = ?
                WHERE chapter_id = ?
                """,
                (
                    chapter.title,
                    chapter.summary,
                    dumps(chapter.themes),
                    chapter.coherence,
                    chapter.entry_count,
                    ts(chapter.updated_at),
                    chapter.chapter_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Chapter", chapter.chapter_id)
        return chapter

    async def link_entry(self, link: ChapterLink) -> bool:
        """Link an entry to a chapter

        Returns:
            False when the link already existed
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO chapter_links (chapter_id, entry_id, relevance, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (link.chapter_id, link.entry_id, link.relevance, ts(link.created_at)),
            )
            return cursor.rowcount > 0

    async def list_links(self, chapter_id: str) -> list[ChapterLink]:
        cursor = await self._conn.execute(
            "SELECT * FROM chapter_links WHERE chapter_id = ? ORDER BY created_at, entry_id",
            (chapter_id,),
        )
        return [
            ChapterLink(
                chapter_id=row["chapter_id"],
                entry_id=row["entry_id"],
                relevance=row["relevance"],
                created_at=parse_ts(row["created_at"]),
            )
            for row in await cursor.fetchall()
        ]

    async def chapters_for_entry(self, entry_id: str) -> list[Chapter]:
        cursor = await self._conn.execute(
            """
            SELECT c.* FROM chapters c
            JOIN chapter_links l ON l.chapter_id = c.chapter_id
            WHERE l.entry_id = ?
            ORDER BY c.chapter_id
            """,
            (entry_id,),
        )
        return [self._row_to_chapter(row) for row in await cursor.fetchall()]

    async def unlink_entry(self, chapter_id: str, entry_id: str) -> bool:
        """Returns False when there was no such link"""
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                "DELETE FROM chapter_links WHERE chapter_id = ? AND entry_id = ?",
                (chapter_id, entry_id),
            )
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_chapter(row: aiosqlite.Row) -> Chapter:
        return Chapter(
            chapter_id=row["chapter_id"],
            user_id=row["user_id"],
            era=row["era"],
            area_id=row["area_id"],
            title=row["title"],
            summary=row["summary"],
            themes=loads(row["themes"], []),
            coherence=row["coherence"],
            entry_count=row["entry_count"],
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )
