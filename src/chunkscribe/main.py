from __future__ import annotations

import atexit
import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from chunkscribe.config import Settings, load_settings
from chunkscribe.engine import JobEngine
from chunkscribe.http_routes import RouteRegistry
from chunkscribe.mcp_tools import ToolRegistry
from chunkscribe.services.media import FfmpegMedia
from chunkscribe.services.storage import StorageService
from chunkscribe.services.transcriber import ElevenLabsTranscriber
from chunkscribe.sessions import SessionReaper, SessionStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger(__name__)


class AppRuntime:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.sessions = SessionStore()
        self.storage = StorageService(settings.work_dir, max_upload_bytes=settings.max_upload_bytes)
        self.media = FfmpegMedia(
            settings.work_dir / "units",
            ffmpeg=settings.ffmpeg_path,
            ffprobe=settings.ffprobe_path,
        )
        self.transcriber = ElevenLabsTranscriber(
            api_key=settings.elevenlabs_api_key,
            model=settings.elevenlabs_model,
            language_code=settings.language_code,
            diarize=settings.diarize,
            tag_audio_events=settings.tag_audio_events,
            timeout_seconds=settings.transcription_timeout_seconds,
        )

        self.engine = JobEngine(
            sessions=self.sessions,
            media=self.media,
            transcriber=self.transcriber,
            storage=self.storage,
            unit_seconds=settings.unit_seconds,
            unit_workers=settings.unit_workers,
        )
        self.reaper = SessionReaper(
            self.sessions,
            max_age_seconds=settings.session_max_age_seconds,
            interval_seconds=settings.reap_interval_seconds,
        )

    def close(self) -> None:
        self.reaper.stop()


def create_app(runtime: AppRuntime) -> FastMCP:
    mcp = FastMCP(name="chunkscribe")

    ToolRegistry(runtime.engine, runtime.sessions).register(mcp)
    RouteRegistry(runtime.engine, runtime.sessions, api_path=runtime.settings.api_path).register(mcp)

    @mcp.custom_route(runtime.settings.health_path, methods=["GET"])
    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "reaper_running": runtime.reaper.is_running,
                "active_sessions": len(runtime.sessions),
                "active_jobs": runtime.engine.active_jobs(),
                "mcp_path": runtime.settings.mcp_path,
                "api_path": runtime.settings.api_path,
            }
        )

    return mcp


def cli() -> None:
    settings = load_settings()
    runtime = AppRuntime(settings)
    runtime.reaper.start()
    atexit.register(runtime.close)

    app = create_app(runtime)
    logger.info("Starting server on %s:%s (MCP %s, HTTP %s)", settings.host, settings.port,
                settings.mcp_path, settings.api_path)
    app.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        path=settings.mcp_path,
    )


if __name__ == "__main__":
    cli()
