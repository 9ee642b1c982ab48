from pathlib import Path
from typing import Any

from chunkscribe.engine import JobEngine
from chunkscribe.mcp_tools import ToolRegistry
from chunkscribe.services.storage import StorageService
from chunkscribe.sessions import SessionStore


class DummyMCP:
    def __init__(self) -> None:
        self.tools: dict[str, Any] = {}

    def tool(self, fn: Any = None, **_: Any) -> Any:
        def decorator(func: Any) -> Any:
            self.tools[func.__name__] = func
            return func

        return decorator(fn) if fn is not None else decorator


class FakeMedia:
    def __init__(self, work_dir: Path) -> None:
        self.work_dir = work_dir
        self.work_dir.mkdir(parents=True, exist_ok=True)

    def probe_duration(self, path: Path) -> float:
        return 42.0

    def extract_segment(self, path: Path, start_seconds: float, length_seconds: float) -> Path:
        unit_path = self.work_dir / "chunk_0.mp3"
        unit_path.write_bytes(b"unit")
        return unit_path


class FakeTranscriber:
    def transcribe(self, audio: bytes) -> str:
        return "short clip"


def _registry(tmp_path: Path) -> tuple[DummyMCP, JobEngine]:
    sessions = SessionStore()
    engine = JobEngine(
        sessions=sessions,
        media=FakeMedia(tmp_path / "units"),
        transcriber=FakeTranscriber(),
        storage=StorageService(tmp_path / "work"),
    )
    mcp = DummyMCP()
    ToolRegistry(engine, sessions).register(mcp)  # type: ignore[arg-type]
    return mcp, engine


def test_transcribe_file_then_poll(tmp_path: Path) -> None:
    mcp, engine = _registry(tmp_path)
    audio = tmp_path / "clip.ogg"
    audio.write_bytes(b"fake-audio")

    queued = mcp.tools["transcribe_file"](str(audio))
    session_id = queued["session_id"]
    assert engine.wait(session_id, timeout_seconds=10)

    status = mcp.tools["job_status"](session_id)
    assert status["status"] == "completed"
    assert status["final_text"] == "short clip"
    assert audio.exists()


def test_missing_file_and_unknown_session(tmp_path: Path) -> None:
    mcp, _ = _registry(tmp_path)

    assert mcp.tools["transcribe_file"](str(tmp_path / "nope.mp3"))["error"] == "file_not_found"
    assert mcp.tools["job_status"]("never-issued")["error"] == "session_not_found"
