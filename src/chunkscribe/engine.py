from __future__ import annotations

import logging
import uuid
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from pathlib import Path
from threading import Lock, Thread
from typing import Protocol

from chunkscribe.services.segmenter import segment
from chunkscribe.services.storage import StorageService
from chunkscribe.services.transcriber import Transcriber
from chunkscribe.sessions import SessionStore
from chunkscribe.types import Segment

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = "[Error transcribing this chunk: {message}]"
MAX_FAILURE_REASON = 2000


class MediaTool(Protocol):
    def probe_duration(self, path: Path) -> float: ...

    def extract_segment(self, path: Path, start_seconds: float, length_seconds: float) -> Path: ...


def placeholder_text(exc: BaseException) -> str:
    message = str(exc).strip() or exc.__class__.__name__
    return PLACEHOLDER_TEMPLATE.format(message=message)


class JobEngine:
    """Runs each submitted job on its own background thread.

    A job is the only writer for its session; every write goes through
    ``SessionStore.update``.
    """

    def __init__(
        self,
        *,
        sessions: SessionStore,
        media: MediaTool,
        transcriber: Transcriber,
        storage: StorageService,
        unit_seconds: float = 300,
        unit_workers: int = 1,
    ) -> None:
        if unit_seconds <= 0:
            raise ValueError("unit_seconds must be > 0")
        if unit_workers <= 0:
            raise ValueError("unit_workers must be > 0")
        self.sessions = sessions
        self.media = media
        self.transcriber = transcriber
        self.storage = storage
        self.unit_seconds = unit_seconds
        self.unit_workers = unit_workers
        self._threads: dict[str, Thread] = {}
        self._threads_lock = Lock()

    def submit(self, audio: bytes, filename: str | None = None) -> str:
        self.storage.check_upload(audio)
        session_id = str(uuid.uuid4())
        self.sessions.create(session_id)
        try:
            source_path = self.storage.save_upload(session_id, audio, filename)
        except Exception as exc:
            self.sessions.update(session_id, lambda s: s.fail(f"Could not store upload: {exc}"))
            raise

        logger.info("Accepted session %s (%.2f MB)", session_id, len(audio) / (1024 * 1024))
        thread = Thread(
            target=self.run_job,
            args=(session_id, source_path),
            name=f"chunkscribe-job-{session_id[:8]}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[session_id] = thread
        thread.start()
        return session_id

    def wait(self, session_id: str, timeout_seconds: float | None = None) -> bool:
        """Block until the job thread for ``session_id`` exits. Returns False on timeout."""
        with self._threads_lock:
            thread = self._threads.get(session_id)
        if thread is None:
            return True
        thread.join(timeout=timeout_seconds)
        return not thread.is_alive()

    def active_jobs(self) -> int:
        with self._threads_lock:
            return sum(1 for thread in self._threads.values() if thread.is_alive())

    def run_job(self, session_id: str, source_path: Path) -> None:
        try:
            self._process_job(session_id, source_path)
        except Exception as exc:  # pylint: disable=broad-except
            message = str(exc).strip() or exc.__class__.__name__
            logger.exception("Session %s failed: %s", session_id, message)
            self.sessions.update(session_id, lambda s: s.fail(message[:MAX_FAILURE_REASON]))
        finally:
            self.storage.discard(source_path)
            with self._threads_lock:
                self._threads.pop(session_id, None)

    def _process_job(self, session_id: str, source_path: Path) -> None:
        self.sessions.update(session_id, lambda s: s.begin_segmenting())
        duration = self.media.probe_duration(source_path)
        segments = segment(duration, self.unit_seconds)
        logger.info("Session %s: %.1fs of audio in %d unit(s)", session_id, duration, len(segments))
        self.sessions.update(session_id, lambda s: s.begin_transcribing(len(segments)))

        if self.unit_workers == 1 or len(segments) == 1:
            for seg in segments:
                self._process_unit(session_id, source_path, seg, len(segments))
        else:
            self._process_units_concurrently(session_id, source_path, segments)

        self.sessions.update(session_id, lambda s: s.complete())
        logger.info("Session %s completed", session_id)

    def _process_units_concurrently(
        self, session_id: str, source_path: Path, segments: list[Segment]
    ) -> None:
        executor = ThreadPoolExecutor(
            max_workers=min(self.unit_workers, len(segments)),
            thread_name_prefix=f"chunkscribe-unit-{session_id[:8]}",
        )
        try:
            futures = [
                executor.submit(self._process_unit, session_id, source_path, seg, len(segments))
                for seg in segments
            ]
            done, _ = wait_futures(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    raise error
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _process_unit(self, session_id: str, source_path: Path, seg: Segment, total: int) -> None:
        unit_path = self.media.extract_segment(source_path, seg.start, seg.length)
        try:
            try:
                text = self.transcriber.transcribe(unit_path.read_bytes())
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Session %s: unit %d/%d failed: %s", session_id, seg.index + 1, total, exc)
                text = placeholder_text(exc)
        finally:
            self.storage.discard(unit_path)

        self.sessions.update(session_id, lambda s: s.record_unit(seg.index, text))
        logger.info("Session %s: unit %d/%d transcribed", session_id, seg.index + 1, total)
