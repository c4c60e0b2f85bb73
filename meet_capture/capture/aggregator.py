"""
Segment Aggregator

Merges a stream of raw, repeatedly rewritten caption fragments into stable,
speaker-attributed segments. The live caption UI keeps rewriting the same
line while someone talks ("Hi", "Hi there", "Hi there, everyone"), so most
fragments extend the speaker's active segment instead of starting a new one.

Pure data-structure logic: no I/O, the clock is injected.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from meet_capture.models import Segment, UNKNOWN_SPEAKER


def _monotonic_elapsed() -> Callable[[], float]:
    origin = time.monotonic()
    return lambda: time.monotonic() - origin


class SegmentAggregator:
    """
    Tracks at most one active segment per speaker plus an append-only
    sequence of finalized segments.

    Flushing is two-phase: `snapshot_for_flush()` is non-destructive and
    `mark_flushed()` is only called once the consumer acknowledged the batch.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        prefix_length: int = 20,
        min_unresolved_length: int = 10,
    ):
        self.clock = clock or _monotonic_elapsed()
        self.prefix_length = prefix_length
        self.min_unresolved_length = min_unresolved_length

        self._finalized: List[Segment] = []
        self._active: Dict[str, Segment] = {}
        # Every text applied for each speaker during the session
        self._seen: Dict[str, Set[str]] = {}
        # Final texts of each speaker's finalized segments
        self._spoken: Dict[str, List[str]] = {}
        self._next_index = 1

        # Flush bookkeeping
        self._flushed_count = 0
        self._snapshot_boundary = 0
        self._snapshot_versions: Dict[int, Tuple[str, float]] = {}
        self._flushed_versions: Dict[int, Tuple[str, float]] = {}

    # =========================================================================
    # Observation
    # =========================================================================

    def observe(self, speaker: str, text: str) -> Optional[Segment]:
        """
        Merge one caption fragment.

        Returns a copy of the segment the fragment landed in, or None when
        the fragment was rejected as noise or changed nothing.
        """
        speaker = (speaker or "").strip()
        text = (text or "").strip()

        if not self._accepts(speaker, text):
            return None

        # Same text again, possibly replayed late by the slower channel
        seen = self._seen.setdefault(speaker, set())
        if text in seen:
            return None

        active = self._active.get(speaker)
        now = self.clock()

        if active and text.startswith(active.text[:self.prefix_length]):
            seen.add(text)
            active.text = text
            active.end = max(active.end, now)
            return active.copy()

        if self._is_stale(speaker, text):
            return None

        if active:
            self._append_finalized(active)

        seen.add(text)
        segment = Segment(speaker=speaker, text=text, start=now, end=now, index=self._next_index)
        self._next_index += 1
        self._active[speaker] = segment
        return segment.copy()

    def _accepts(self, speaker: str, text: str) -> bool:
        if not text:
            return False
        if speaker and text.lower() == speaker.lower():
            # Speaker badge read as caption body
            return False
        if self._is_unresolved(speaker) and len(text) < self.min_unresolved_length:
            return False
        return True

    @staticmethod
    def _is_unresolved(speaker: str) -> bool:
        return not speaker or speaker == UNKNOWN_SPEAKER

    def _is_stale(self, speaker: str, text: str) -> bool:
        """An earlier rewrite of something this speaker already said."""
        prior = list(self._spoken.get(speaker, ()))
        active = self._active.get(speaker)
        if active:
            prior.append(active.text)
        return any(said.startswith(text) for said in prior)

    def _append_finalized(self, segment: Segment) -> None:
        self._finalized.append(segment)
        self._spoken.setdefault(segment.speaker, []).append(segment.text)

    # =========================================================================
    # Finalization
    # =========================================================================

    def finalize(self, speaker: str) -> Optional[Segment]:
        """Move the speaker's active segment (if any) into the finalized sequence."""
        segment = self._active.pop(speaker, None)
        if segment is None:
            return None
        self._append_finalized(segment)
        return segment.copy()

    def close_all(self) -> List[Segment]:
        """Finalize every active segment and return the full finalized sequence."""
        for segment in sorted(self._active.values(), key=lambda s: s.index):
            self._append_finalized(segment)
        self._active.clear()
        return self.finalized

    # =========================================================================
    # Flushing
    # =========================================================================

    def snapshot_for_flush(self) -> List[Segment]:
        """
        Unflushed finalized segments followed by point-in-time copies of the
        active ones. Active segments stay active: they may still grow.
        """
        candidates = self._finalized[self._flushed_count:] + sorted(
            self._active.values(), key=lambda s: s.index
        )
        batch = [s.copy() for s in candidates if not self._already_flushed(s)]

        self._snapshot_boundary = len(self._finalized)
        self._snapshot_versions = {s.index: (s.text, s.end) for s in batch}
        return batch

    def mark_flushed(self, terminal: bool = False) -> None:
        """
        Record that the last snapshot was acknowledged by its consumer.
        A terminal flush also moves all active segments into the finalized
        sequence; any text they gained after the snapshot stays unflushed.
        """
        self._flushed_versions.update(self._snapshot_versions)
        self._snapshot_versions = {}
        self._flushed_count = max(self._flushed_count, self._snapshot_boundary)

        if terminal:
            self.close_all()
            while (
                self._flushed_count < len(self._finalized)
                and self._already_flushed(self._finalized[self._flushed_count])
            ):
                self._flushed_count += 1

    def _already_flushed(self, segment: Segment) -> bool:
        return self._flushed_versions.get(segment.index) == (segment.text, segment.end)

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def finalized(self) -> List[Segment]:
        return [s.copy() for s in self._finalized]

    def active(self, speaker: str) -> Optional[Segment]:
        segment = self._active.get(speaker)
        return segment.copy() if segment else None

    def all_segments(self) -> List[Segment]:
        """Finalized segments followed by copies of the active ones."""
        return self.finalized + [
            s.copy() for s in sorted(self._active.values(), key=lambda s: s.index)
        ]

    @property
    def count(self) -> int:
        return len(self._finalized) + len(self._active)
