from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

JobStatus = Literal["queued", "segmenting", "transcribing", "completed", "failed"]


@dataclass(frozen=True, slots=True)
class Segment:
    index: int
    start: float
    length: float

    @property
    def end(self) -> float:
        return self.start + self.length


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    session_id: str
    status: JobStatus
    progress_percent: int
    total_units: int
    completed_units: int
    current_text: str
    final_text: str | None
    error: str | None
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
