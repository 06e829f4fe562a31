import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

LOGGER = logging.getLogger(__name__)

DB_FILENAME = "app.db"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS GENERATION_RUN (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        device_id TEXT NOT NULL,
        user_id TEXT,
        outcome TEXT NOT NULL,
        image_id TEXT,
        clip_id TEXT,
        prompt TEXT,
        scene_description TEXT,
        make_instrumental INTEGER,
        music_url TEXT,
        title TEXT,
        error TEXT,
        processing_time_ms INTEGER,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_generation_run_device ON GENERATION_RUN(device_id)",
)


def resolve_database_dir(database_dir: Optional[Path | str] = None) -> Path:
    """Return a usable directory for the history database, creating it if needed.

    Falls back to the DATABASE_DIR environment variable.

    Raises:
        RuntimeError: If no directory is configured, the path is a file, or it
            cannot be created.
    """
    raw = str(database_dir) if database_dir is not None else os.getenv("DATABASE_DIR", "")
    if not raw.strip():
        raise RuntimeError("DATABASE_DIR must be set to a writable directory to enable run history.")

    path = Path(raw).expanduser()
    if path.exists() and not path.is_dir():
        raise RuntimeError(f"DATABASE_DIR={raw!r} is a file, not a directory.")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Cannot create database directory {path}") from exc
    return path


class AsyncDatabaseInitializer:
    """
    Owns the run-history SQLite file at <database_dir>/app.db.

    History is scoped to one process: the first `ensure_database()` call on an
    instance removes any file left by a previous run and creates the
    GENERATION_RUN schema. Later calls do nothing, so `connection()` can call
    it unconditionally.
    """

    def __init__(self, database_dir: Optional[Path | str] = None) -> None:
        self.db_dir = resolve_database_dir(database_dir)
        self.db_path = self.db_dir / DB_FILENAME
        self._initialized = False

    def _remove_stale_file(self) -> None:
        try:
            self.db_path.unlink(missing_ok=True)
        except OSError as exc:
            raise RuntimeError(f"Failed to delete existing database at {self.db_path}") from exc

    async def ensure_database(self) -> None:
        """Create a fresh database with the history schema, once per instance."""
        if self._initialized:
            return

        self._remove_stale_file()

        attempts = 3
        for attempt in range(1, attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    for statement in SCHEMA:
                        await db.execute(statement)
                    await db.commit()
                break
            except FileNotFoundError:
                # Transient on some filesystems right after the unlink.
                if attempt == attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True
        LOGGER.info("Run history database ready at %s", self.db_path)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an `aiosqlite.Connection`, initializing the database first if needed."""
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
