from __future__ import annotations

import math

from chunkscribe.errors import InvalidSourceError
from chunkscribe.types import Segment

# Quotients within this margin of a whole number count as that number, so
# 2.1 / 0.3 == 7.000000000000001 gives 7 windows rather than 8.
_QUOTIENT_TOLERANCE = 1e-9


def count_segments(total_seconds: float, unit_seconds: float) -> int:
    if unit_seconds <= 0:
        raise ValueError("unit_seconds must be > 0")
    if not math.isfinite(total_seconds) or total_seconds <= 0:
        raise InvalidSourceError(f"Audio duration must be positive, got {total_seconds!r}")
    return max(1, math.ceil(total_seconds / unit_seconds - _QUOTIENT_TOLERANCE))


def segment(total_seconds: float, unit_seconds: float) -> list[Segment]:
    """Split ``[0, total_seconds)`` into contiguous windows of ``unit_seconds``.

    Windows are indexed from zero by position; the last one runs to the end of
    the audio so the union covers the duration exactly.
    """
    count = count_segments(total_seconds, unit_seconds)
    segments: list[Segment] = []
    for index in range(count):
        start = index * unit_seconds
        if index == count - 1:
            length = total_seconds - start
        else:
            length = unit_seconds
        segments.append(Segment(index=index, start=start, length=length))
    return segments


__all__ = ["count_segments", "segment"]
