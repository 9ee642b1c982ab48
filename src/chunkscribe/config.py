from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_UNIT_SECONDS = 300
DEFAULT_MAX_UPLOAD_BYTES = 500 * 1024 * 1024


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    mcp_path: str
    health_path: str
    api_path: str
    work_dir: Path
    elevenlabs_api_key: str
    elevenlabs_model: str
    language_code: str | None
    diarize: bool
    tag_audio_events: bool
    transcription_timeout_seconds: float
    unit_seconds: int
    unit_workers: int
    max_upload_bytes: int
    session_max_age_seconds: int
    reap_interval_seconds: int
    ffmpeg_path: str
    ffprobe_path: str


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _as_positive_int(name: str, default: int) -> int:
    value = _as_int(name, default)
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def _as_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path.rstrip("/") or "/"


def load_settings() -> Settings:
    load_dotenv()
    default_work_dir = Path(tempfile.gettempdir()) / "chunkscribe"
    work_dir = Path(os.getenv("WORK_DIR", str(default_work_dir))).resolve()

    elevenlabs_api_key = os.getenv("ELEVENLABS_API_KEY", "").strip()
    if not elevenlabs_api_key:
        raise RuntimeError("ELEVENLABS_API_KEY is required")

    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3000),
        mcp_path=_normalized_path(os.getenv("MCP_PATH", "/mcp")),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/healthz")),
        api_path=_normalized_path(os.getenv("API_PATH", "/api/transcribe")),
        work_dir=work_dir,
        elevenlabs_api_key=elevenlabs_api_key,
        elevenlabs_model=os.getenv("ELEVENLABS_MODEL", "scribe_v2"),
        language_code=os.getenv("TRANSCRIPTION_LANGUAGE", "eng").strip() or None,
        diarize=_as_bool("TRANSCRIPTION_DIARIZE", True),
        tag_audio_events=_as_bool("TRANSCRIPTION_TAG_AUDIO_EVENTS", True),
        transcription_timeout_seconds=float(_as_positive_int("TRANSCRIPTION_TIMEOUT_SECONDS", 600)),
        unit_seconds=_as_positive_int("UNIT_SECONDS", DEFAULT_UNIT_SECONDS),
        unit_workers=_as_positive_int("UNIT_WORKERS", 1),
        max_upload_bytes=_as_positive_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
        session_max_age_seconds=_as_positive_int("SESSION_MAX_AGE_SECONDS", 3600),
        reap_interval_seconds=_as_positive_int("REAP_INTERVAL_SECONDS", 1800),
        ffmpeg_path=os.getenv("FFMPEG_PATH", "ffmpeg"),
        ffprobe_path=os.getenv("FFPROBE_PATH", "ffprobe"),
    )
