from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from threading import Event, Lock, Thread
from typing import Any, Callable

from chunkscribe.errors import DuplicateSessionError, InvalidTransitionError, SessionNotFoundError
from chunkscribe.types import JobStatus, SessionSnapshot

logger = logging.getLogger(__name__)

PROGRESS_SEGMENTING = 5
PROGRESS_TRANSCRIBING = 10
PROGRESS_CEILING = 99
UNIT_SEPARATOR = "\n\n"

_TRANSITIONS: dict[JobStatus, tuple[JobStatus, ...]] = {
    "queued": ("segmenting", "failed"),
    "segmenting": ("transcribing", "failed"),
    "transcribing": ("completed", "failed"),
    "completed": (),
    "failed": (),
}


def transcription_progress(completed_units: int, total_units: int) -> int:
    """Blend the segmentation baseline with the share of finished units.

    Capped below 100 so that only completion reports a full bar.
    """
    if total_units <= 0:
        return PROGRESS_TRANSCRIBING
    share = (completed_units * (100 - PROGRESS_TRANSCRIBING)) // total_units
    return min(PROGRESS_CEILING, PROGRESS_TRANSCRIBING + share)


def join_units(partial_results: dict[int, str]) -> str:
    return UNIT_SEPARATOR.join(partial_results[index] for index in sorted(partial_results))


@dataclass(slots=True)
class Session:
    id: str
    created_at: float
    status: JobStatus = "queued"
    total_units: int = 0
    completed_units: int = 0
    progress_percent: int = 0
    partial_results: dict[int, str] = field(default_factory=dict)
    final_text: str | None = None
    failure_reason: str | None = None

    def copy(self) -> Session:
        return replace(self, partial_results=dict(self.partial_results))

    def _advance(self, status: JobStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Session {self.id} cannot move from {self.status} to {status}"
            )
        self.status = status

    def _set_progress(self, value: int) -> None:
        self.progress_percent = max(self.progress_percent, value)

    def begin_segmenting(self) -> None:
        self._advance("segmenting")
        self._set_progress(PROGRESS_SEGMENTING)

    def begin_transcribing(self, total_units: int) -> None:
        if total_units <= 0:
            raise InvalidTransitionError(f"Session {self.id} needs at least one unit")
        self._advance("transcribing")
        self.total_units = total_units
        self._set_progress(PROGRESS_TRANSCRIBING)

    def record_unit(self, index: int, text: str) -> None:
        if self.status != "transcribing":
            raise InvalidTransitionError(f"Session {self.id} is not transcribing ({self.status})")
        if not 0 <= index < self.total_units:
            raise InvalidTransitionError(
                f"Unit index {index} is outside 0..{self.total_units - 1} for session {self.id}"
            )
        if index in self.partial_results:
            raise InvalidTransitionError(f"Unit {index} already recorded for session {self.id}")
        self.partial_results[index] = text
        self.completed_units += 1
        self._set_progress(transcription_progress(self.completed_units, self.total_units))

    def complete(self) -> None:
        missing = self.total_units - len(self.partial_results)
        if missing:
            raise InvalidTransitionError(f"Session {self.id} is missing {missing} unit(s)")
        self._advance("completed")
        self.final_text = join_units(self.partial_results)
        self.progress_percent = 100

    def fail(self, reason: str) -> None:
        self._advance("failed")
        self.failure_reason = reason

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.id,
            status=self.status,
            progress_percent=self.progress_percent,
            total_units=self.total_units,
            completed_units=self.completed_units,
            current_text=join_units(self.partial_results),
            final_text=self.final_text,
            error=self.failure_reason,
            created_at=self.created_at,
        )


class SessionStore:
    """Process-wide map of session id to job state.

    Every mutation runs against a private copy under the store lock and is
    swapped in only if the mutator returns, so readers never see half an update.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def create(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            if session_id in self._sessions:
                raise DuplicateSessionError(f"Session already exists: {session_id}")
            session = Session(id=session_id, created_at=self._clock())
            self._sessions[session_id] = session
            return session.snapshot()

    def get(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return session.snapshot()

    def update(self, session_id: str, mutator: Callable[[Session], Any]) -> SessionSnapshot | None:
        """Apply ``mutator`` atomically. Returns None if the session is gone."""
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                logger.debug("Dropping update for missing session %s", session_id)
                return None
            draft = current.copy()
            mutator(draft)
            self._sessions[session_id] = draft
            return draft.snapshot()

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def reap(self, max_age_seconds: float) -> list[str]:
        cutoff = self._clock() - max_age_seconds
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if session.created_at < cutoff]
            for session_id in expired:
                del self._sessions[session_id]
        return expired


class SessionReaper:
    def __init__(
        self,
        store: SessionStore,
        *,
        max_age_seconds: float,
        interval_seconds: float,
    ) -> None:
        self.store = store
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._stop_event = Event()
        self._thread = Thread(target=self._run_loop, name="chunkscribe-reaper", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self, timeout_seconds: float = 10.0) -> None:
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout=timeout_seconds)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def run_once(self) -> list[str]:
        removed = self.store.reap(self.max_age_seconds)
        if removed:
            logger.info("Reaped %d expired session(s)", len(removed))
        return removed

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Session reaper pass failed")
