from pathlib import Path

from starlette.applications import Starlette
from starlette.datastructures import UploadFile
from starlette.testclient import TestClient

from chunkscribe.engine import JobEngine
from chunkscribe.errors import MediaReadError
from chunkscribe.http_routes import RouteRegistry
from chunkscribe.services.storage import StorageService
from chunkscribe.sessions import SessionStore


class FakeMedia:
    def __init__(self, work_dir: Path, duration: float | None = 600.0) -> None:
        self.work_dir = work_dir
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.duration = duration

    def probe_duration(self, path: Path) -> float:
        if self.duration is None:
            raise MediaReadError("moov atom not found")
        return self.duration

    def extract_segment(self, path: Path, start_seconds: float, length_seconds: float) -> Path:
        unit_path = self.work_dir / f"chunk_{int(start_seconds)}.mp3"
        unit_path.write_bytes(str(int(start_seconds)).encode())
        return unit_path


class FakeTranscriber:
    def transcribe(self, audio: bytes) -> str:
        return f"part {audio.decode()}"


def _client(tmp_path: Path, duration: float | None = 600.0) -> tuple[TestClient, JobEngine]:
    sessions = SessionStore()
    engine = JobEngine(
        sessions=sessions,
        media=FakeMedia(tmp_path / "units", duration=duration),
        transcriber=FakeTranscriber(),
        storage=StorageService(tmp_path / "work", max_upload_bytes=64),
        unit_seconds=300,
    )
    registry = RouteRegistry(engine, sessions, api_path="/api/transcribe")
    return TestClient(Starlette(routes=registry.routes())), engine


def test_upload_poll_and_download(tmp_path: Path) -> None:
    client, engine = _client(tmp_path)

    response = client.post("/api/transcribe", files={"audio": ("talk.mp3", b"fake-audio", "audio/mpeg")})
    assert response.status_code == 200
    session_id = response.json()["session_id"]
    assert engine.wait(session_id, timeout_seconds=10)

    poll = client.get(f"/api/transcribe/{session_id}")
    assert poll.status_code == 200
    body = poll.json()
    assert body["status"] == "completed"
    assert body["progress_percent"] == 100
    assert body["total_units"] == 2
    assert body["completed_units"] == 2
    assert body["current_text"] == "part 0\n\npart 300"
    assert body["final_text"] == "part 0\n\npart 300"
    assert body["error"] is None

    download = client.get(f"/api/transcribe/{session_id}/download")
    assert download.status_code == 200
    assert download.text == "part 0\n\npart 300"
    assert "transcription.txt" in download.headers["content-disposition"]


def test_failed_job_reports_error_as_data(tmp_path: Path) -> None:
    client, engine = _client(tmp_path, duration=None)

    session_id = client.post(
        "/api/transcribe", files={"audio": ("talk.mp3", b"fake-audio", "audio/mpeg")}
    ).json()["session_id"]
    assert engine.wait(session_id, timeout_seconds=10)

    body = client.get(f"/api/transcribe/{session_id}").json()
    assert body["status"] == "failed"
    assert body["error"] == "moov atom not found"
    assert body["total_units"] == 0

    download = client.get(f"/api/transcribe/{session_id}/download")
    assert download.status_code == 409


def test_missing_file_is_bad_request(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    response = client.post("/api/transcribe", data={"note": "no audio"})
    assert response.status_code == 400
    assert response.json()["error"] == "No audio file provided"


def test_oversized_upload_rejected(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    response = client.post("/api/transcribe", files={"audio": ("big.mp3", b"x" * 65, "audio/mpeg")})
    assert response.status_code == 413


def test_unknown_session_is_not_found(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    assert client.get("/api/transcribe/never-issued").status_code == 404
    assert client.get("/api/transcribe/never-issued/download").status_code == 404


def test_oversized_upload_rejected_before_reading(tmp_path: Path, monkeypatch) -> None:
    reads: list[str] = []

    async def read_and_record(self, size: int = -1) -> bytes:
        reads.append(self.filename)
        return b""

    monkeypatch.setattr(UploadFile, "read", read_and_record)
    client, engine = _client(tmp_path)

    response = client.post("/api/transcribe", files={"audio": ("big.mp3", b"x" * 65, "audio/mpeg")})

    assert response.status_code == 413
    assert reads == []
    assert len(engine.sessions) == 0
