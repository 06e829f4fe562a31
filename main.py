import inspect
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from openai import AsyncOpenAI

load_dotenv()  # Load environment variables from .env file if present

from dal.generation_history_dal import GenerationHistoryDAL
from models.pipeline_models import utc_now_iso
from routes.buffer_route import router as buffer_router
from routes.music_route import router as music_router
from routes.scene_route import router as scene_router
from services.image_buffer import ImageBuffer
from services.music.suno_client import MusicGenerationClient
from services.music_store import MusicStore
from services.pipeline import ScenePipeline
from services.scene_change import SceneChangeDetector
from services.vision.scene_analyzer import SceneAnalyzer
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


def build_pipeline(
    settings: Settings,
    openai_client: AsyncOpenAI,
    music_client: MusicGenerationClient,
    history: Optional[GenerationHistoryDAL] = None,
) -> ScenePipeline:
    """Wire a pipeline with fresh in-memory buffer and store."""
    buffer = ImageBuffer(settings.max_image_buffer_size, settings.image_compression_quality)
    return ScenePipeline(
        buffer=buffer,
        detector=SceneChangeDetector(buffer, settings.scene_change_threshold),
        analyzer=SceneAnalyzer(openai_client, model=settings.openai_model),
        generator=music_client,
        store=MusicStore(settings.max_music_entries),
        history=history,
        change_threshold=settings.scene_change_threshold,
        audio_timeout=settings.audio_wait_timeout,
        poll_interval=settings.poll_interval,
    )


async def _close_quietly(client) -> None:
    """Close a client exposing aclose/close, sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        # Shutdown errors must not mask the original exit reason.
        LOGGER.warning("Error while closing %s: %s", type(client).__name__, exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the OpenAI async client (scene analysis)
      - the music generation client
      - the optional SQLite run history (fresh on startup, at DATABASE_DIR/app.db)
      - the scene pipeline
    and attach them to `app.state`.
    """
    settings = Settings.from_env()
    settings.require_api_keys()

    try:
        openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc

    music_client = MusicGenerationClient(settings.suno_api_key, base_url=settings.suno_base_url)

    history = None
    if settings.database_dir:
        db_initializer = AsyncDatabaseInitializer(settings.database_dir)
        # This will delete any existing DB at db_path and create a fresh one.
        await db_initializer.ensure_database()
        app.state.db_initializer = db_initializer
        history = GenerationHistoryDAL(db_initializer)

    app.state.openai_client = openai_client
    app.state.music_client = music_client
    app.state.pipeline = build_pipeline(settings, openai_client, music_client, history)
    LOGGER.info("Scene soundtrack backend ready (history %s)", "enabled" if history else "disabled")

    try:
        yield
    finally:
        await _close_quietly(music_client)
        await _close_quietly(openai_client)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(title="Scene Soundtrack Backend", lifespan=lifespan)

    @app.get("/health")
    @app.get("/api/health")
    async def health(request: Request):
        """
        Simple health check that reports which clients are configured.
        """
        state = request.app.state
        return {
            "ok": True,
            "status": "healthy",
            "timestamp": utc_now_iso(),
            "services": {
                "vision": getattr(state, "openai_client", None) is not None,
                "music": getattr(state, "music_client", None) is not None,
                "pipeline": getattr(state, "pipeline", None) is not None,
                "history": getattr(getattr(state, "pipeline", None), "history", None) is not None,
            },
        }

    # Register application routers
    app.include_router(scene_router)
    app.include_router(buffer_router)
    app.include_router(music_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "3001")))
