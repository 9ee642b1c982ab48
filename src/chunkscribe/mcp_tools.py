from __future__ import annotations

from pathlib import Path
from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from chunkscribe.engine import JobEngine
from chunkscribe.errors import SessionNotFoundError, UploadRejectedError
from chunkscribe.sessions import SessionStore


class ToolRegistry:
    def __init__(self, engine: JobEngine, sessions: SessionStore) -> None:
        self.engine = engine
        self.sessions = sessions

    def register(self, mcp: FastMCP) -> None:
        _ro = ToolAnnotations(readOnlyHint=True)

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, idempotentHint=False))
        def transcribe_file(path: str) -> dict[str, Any]:
            """Queue a local audio file for chunked transcription.

            Args:
                path: Path to an audio file readable by the server

            Returns:
                The session_id to poll with job_status().
            """
            audio_path = Path(path).expanduser()
            if not audio_path.is_file():
                return {"error": "file_not_found", "path": path}

            try:
                session_id = self.engine.submit(audio_path.read_bytes(), filename=audio_path.name)
            except UploadRejectedError as exc:
                return {"error": "upload_rejected", "message": str(exc)}

            return self.sessions.get(session_id).to_dict()

        @mcp.tool(annotations=_ro)
        def job_status(session_id: str) -> dict[str, Any]:
            """Get progress, partial text and final text for a transcription session.

            Args:
                session_id: The session ID returned from transcribe_file()

            Returns:
                Current status: queued, segmenting, transcribing, completed, or failed.
            """
            try:
                return self.sessions.get(session_id).to_dict()
            except SessionNotFoundError:
                return {"error": "session_not_found", "session_id": session_id}
