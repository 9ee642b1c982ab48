from __future__ import annotations

import logging
import math
import subprocess
import uuid
from pathlib import Path
from threading import Lock
from typing import Callable

from chunkscribe.errors import ExtractionError, MediaReadError
from chunkscribe.services.storage import discard_file

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def build_ffprobe_duration_cmd(input_path: Path, ffprobe: str = "ffprobe") -> list[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]


def build_ffmpeg_extract_cmd(
    input_path: Path,
    output_path: Path,
    start_seconds: float,
    length_seconds: float,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    """Build an ffmpeg command that cuts one window into a standalone MP3."""
    if start_seconds < 0:
        raise ValueError("start_seconds must be >= 0")
    if length_seconds <= 0:
        raise ValueError("length_seconds must be > 0")
    return [
        ffmpeg,
        "-y",
        "-v",
        "error",
        "-ss",
        f"{start_seconds:.3f}",
        "-i",
        str(input_path),
        "-t",
        f"{length_seconds:.3f}",
        "-vn",
        "-acodec",
        "libmp3lame",
        str(output_path),
    ]


def parse_duration(stdout: str) -> float:
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        raise MediaReadError("ffprobe reported no duration")
    try:
        value = float(lines[0])
    except ValueError as exc:
        raise MediaReadError(f"ffprobe reported an invalid duration: {lines[0]!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise MediaReadError(f"ffprobe reported a non-positive duration: {lines[0]!r}")
    return value


class FfmpegMedia:
    def __init__(
        self,
        work_dir: Path,
        *,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        runner: Runner = subprocess.run,
        timeout_seconds: float = 300.0,
    ) -> None:
        self.work_dir = work_dir
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.runner = runner
        self.timeout_seconds = timeout_seconds
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self._durations: dict[tuple[str, int, int], float] = {}
        self._durations_lock = Lock()

    def probe_duration(self, path: Path) -> float:
        """Return the duration of ``path``, probing each file version once."""
        try:
            stat = path.stat()
        except OSError as exc:
            raise MediaReadError(f"Audio file not found: {path}") from exc
        key = (str(path), stat.st_mtime_ns, stat.st_size)
        with self._durations_lock:
            cached = self._durations.get(key)
        if cached is not None:
            return cached

        duration = self._run_probe(path)
        with self._durations_lock:
            for stale in [k for k in self._durations if not Path(k[0]).exists()]:
                del self._durations[stale]
            self._durations[key] = duration
        return duration

    def _run_probe(self, path: Path) -> float:
        cmd = build_ffprobe_duration_cmd(path, self.ffprobe)
        try:
            completed = self.runner(
                cmd, capture_output=True, text=True, check=False, timeout=self.timeout_seconds
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise MediaReadError(f"ffprobe could not run: {exc}") from exc
        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip() or "ffprobe failed"
            raise MediaReadError(stderr[:400])
        return parse_duration(completed.stdout or "")

    def extract_segment(self, path: Path, start_seconds: float, length_seconds: float) -> Path:
        """Cut ``[start, start + length)`` into a temporary file owned by the caller.

        The requested length is clamped to the audio remaining after ``start``.
        """
        try:
            available = self.probe_duration(path) - start_seconds
        except MediaReadError as exc:
            raise ExtractionError(str(exc)) from exc
        if available <= 0:
            raise ExtractionError(f"Segment start {start_seconds:.3f}s is beyond the end of {path.name}")
        length = min(length_seconds, available)

        output_path = self.work_dir / f"chunk_{uuid.uuid4().hex}_{int(start_seconds)}.mp3"
        cmd = build_ffmpeg_extract_cmd(path, output_path, start_seconds, length, self.ffmpeg)
        try:
            completed = self.runner(
                cmd, capture_output=True, text=True, check=False, timeout=self.timeout_seconds
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            discard_file(output_path)
            raise ExtractionError(f"ffmpeg could not run: {exc}") from exc

        if completed.returncode != 0 or not output_path.exists():
            discard_file(output_path)
            stderr = (completed.stderr or "").strip() or "ffmpeg produced no output"
            raise ExtractionError(stderr[:400])

        logger.debug("Extracted %.1fs at %.1fs into %s", length, start_seconds, output_path.name)
        return output_path


__all__ = [
    "FfmpegMedia",
    "build_ffmpeg_extract_cmd",
    "build_ffprobe_duration_cmd",
    "parse_duration",
]
