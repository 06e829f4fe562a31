"""Async Data Access Layer for the GENERATION_RUN table.

Append-only log of pipeline runs. The music store keeps only the latest track
per device; this table keeps every run for as long as the process lives.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from models.generation_run import GenerationRun
from models.pipeline_models import PipelineResult
from utils.database_init import AsyncDatabaseInitializer


class GenerationHistoryDAL:
    """Data access layer for GENERATION_RUN records."""

    _COLUMNS = (
        "id",
        "device_id",
        "user_id",
        "outcome",
        "image_id",
        "clip_id",
        "prompt",
        "scene_description",
        "make_instrumental",
        "music_url",
        "title",
        "error",
        "processing_time_ms",
        "created_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])
    _PLACEHOLDERS = ", ".join("?" for _ in _COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def record(self, result: PipelineResult, user_id: Optional[str] = None) -> int:
        """Append a pipeline result and return the new row id."""
        run = GenerationRun(
            id=None,
            device_id=result.device_id,
            user_id=user_id,
            outcome=result.outcome.value,
            image_id=result.image_id,
            clip_id=result.clip_id,
            prompt=result.prompt,
            scene_description=result.scene_description,
            make_instrumental=result.make_instrumental,
            music_url=result.music_url,
            title=result.title,
            error=result.error,
            processing_time_ms=result.processing_time_ms,
            created_at=result.timestamp,
        )
        return await self.create_run(run)

    async def create_run(self, run: GenerationRun) -> int:
        make_instrumental = None if run.make_instrumental is None else int(run.make_instrumental)
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO GENERATION_RUN ({self._INSERT_COLUMNS}) VALUES ({self._PLACEHOLDERS})",
                (
                    run.device_id,
                    run.user_id,
                    run.outcome,
                    run.image_id,
                    run.clip_id,
                    run.prompt,
                    run.scene_description,
                    make_instrumental,
                    run.music_url,
                    run.title,
                    run.error,
                    run.processing_time_ms,
                    run.created_at,
                ),
            )
            await conn.commit()
            return cur.lastrowid

    async def list_for_device(self, device_id: str, limit: int = 20, offset: int = 0) -> List[GenerationRun]:
        """List a device's runs, newest first."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM GENERATION_RUN WHERE device_id = ? ORDER BY id DESC LIMIT ? OFFSET ?",
                (device_id, limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_run(r) for r in rows]

    async def count(self) -> int:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT COUNT(*) FROM GENERATION_RUN")
            row = await cur.fetchone()
            return int(row[0]) if row else 0

    @staticmethod
    def _row_to_run(row: Sequence[object]) -> GenerationRun:
        """Convert a DB row tuple into a GenerationRun."""
        return GenerationRun(
            id=row[0],
            device_id=row[1],
            user_id=row[2],
            outcome=row[3],
            image_id=row[4],
            clip_id=row[5],
            prompt=row[6],
            scene_description=row[7],
            make_instrumental=None if row[8] is None else bool(row[8]),
            music_url=row[9],
            title=row[10],
            error=row[11],
            processing_time_ms=row[12],
            created_at=row[13],
        )
