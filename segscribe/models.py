"""Data models for segscribe."""

import enum
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

@dataclass(frozen=True)
class SegmentPlan:
    """How a source of known duration is partitioned into fixed-length segments."""
    total_duration_secs: int
    segment_duration_secs: int
    segment_count: int

    def segments(self) -> Iterator[Tuple[int, int, int]]:
        """
        Yields ``(index, start_secs, duration_secs)`` for every planned segment.

        The final segment is clipped to the end of the source, so the ranges
        tile ``[0, total_duration_secs)`` with no gaps or overlaps.
        """
        for index in range(self.segment_count):
            start = index * self.segment_duration_secs
            duration = min(self.segment_duration_secs, self.total_duration_secs - start)
            yield index, start, duration

@dataclass(frozen=True)
class Segment:
    """A slice of the source that has been written to its own file."""
    index: int
    start_secs: int
    duration_secs: int
    file_path: str

class SegmentStatus(enum.Enum):
    SUCCESS = "success"
    SEGMENT_ERROR = "segment_error"
    TRANSCRIPTION_ERROR = "transcription_error"
    CANCELLED = "cancelled"

@dataclass
class SegmentResult:
    """Outcome of cutting and transcribing one segment."""
    index: int
    status: SegmentStatus
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is SegmentStatus.SUCCESS

@dataclass
class Transcript:
    """Per-segment results of one pipeline run, in segment order."""
    source_path: str
    results: List[SegmentResult] = field(default_factory=list)

    def texts(self) -> List[str]:
        """Texts of the successful segments in order; failed segments are dropped."""
        return [result.text for result in self.results if result.ok]

    @property
    def failed(self) -> List[SegmentResult]:
        return [result for result in self.results if not result.ok]

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def is_complete(self) -> bool:
        return not self.failed

    def render(self, separator: str = " ", gap_marker: Optional[str] = None) -> str:
        """
        Joins the segment texts into a single string.

        Args:
            separator: Placed between consecutive segments.
            gap_marker: If given, stands in for every failed segment. If None,
                        failed segments are left out entirely.

        Surrounding whitespace of each segment text is trimmed before joining.
        """
        if gap_marker is None:
            return separator.join(text.strip() for text in self.texts())
        return separator.join(result.text.strip() if result.ok else gap_marker for result in self.results)
