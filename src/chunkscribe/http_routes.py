from __future__ import annotations

import logging
from typing import Any

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from chunkscribe.engine import JobEngine
from chunkscribe.errors import SessionNotFoundError, UploadRejectedError
from chunkscribe.sessions import SessionStore

logger = logging.getLogger(__name__)


def _not_found(session_id: str) -> JSONResponse:
    return JSONResponse({"error": "session_not_found", "session_id": session_id}, status_code=404)


class RouteRegistry:
    """Plain HTTP surface for browser clients: upload, poll and download."""

    def __init__(self, engine: JobEngine, sessions: SessionStore, *, api_path: str) -> None:
        self.engine = engine
        self.sessions = sessions
        self.api_path = api_path

    def _endpoints(self) -> list[tuple[str, Any, list[str]]]:
        return [
            (self.api_path, self.submit, ["POST"]),
            (f"{self.api_path}/{{session_id}}", self.poll, ["GET"]),
            (f"{self.api_path}/{{session_id}}/download", self.download, ["GET"]),
        ]

    def routes(self) -> list[Route]:
        return [Route(path, endpoint, methods=methods) for path, endpoint, methods in self._endpoints()]

    def register(self, mcp: Any) -> None:
        for path, endpoint, methods in self._endpoints():
            mcp.custom_route(path, methods=methods)(endpoint)

    async def submit(self, request: Request) -> Response:
        form = await request.form()
        try:
            upload = form.get("audio")
            if not isinstance(upload, UploadFile):
                return JSONResponse({"error": "No audio file provided"}, status_code=400)
            if upload.size is not None:
                self.engine.storage.check_size(upload.size)
            data = await upload.read()
            session_id = await run_in_threadpool(self.engine.submit, data, upload.filename)
        except UploadRejectedError as exc:
            status_code = 413 if exc.too_large else 400
            return JSONResponse({"error": str(exc)}, status_code=status_code)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Error starting transcription")
            message = str(exc).strip() or "Failed to start transcription"
            return JSONResponse({"error": message}, status_code=500)
        finally:
            await form.close()

        return JSONResponse({"session_id": session_id, "message": "Transcription started"})

    async def poll(self, request: Request) -> Response:
        session_id = request.path_params["session_id"]
        try:
            snapshot = self.sessions.get(session_id)
        except SessionNotFoundError:
            return _not_found(session_id)
        return JSONResponse(snapshot.to_dict())

    async def download(self, request: Request) -> Response:
        session_id = request.path_params["session_id"]
        try:
            snapshot = self.sessions.get(session_id)
        except SessionNotFoundError:
            return _not_found(session_id)
        if snapshot.status != "completed" or snapshot.final_text is None:
            return JSONResponse(
                {"error": "transcription_not_ready", "status": snapshot.status},
                status_code=409,
            )
        return PlainTextResponse(
            snapshot.final_text,
            headers={"Content-Disposition": 'attachment; filename="transcription.txt"'},
        )
