"""Short-term memory of what was said, by whom, and when."""

import time
from collections import deque
from typing import Callable, Deque, Dict, List

from coaching_assistant.models import DIALOGUE_SPEAKERS, Speaker, TranscriptFragment


class DialogueBuffer:
    """Time-windowed transcript log, kept per speaker and merged for reads.

    Fragments older than ``retention_horizon`` seconds are evicted lazily on
    every append and read. Arrival order is assumed monotonic per speaker but
    not across speakers, so merged reads sort by ``captured_at``.
    """

    def __init__(self, retention_horizon: float = 300.0, clock: Callable[[], float] = time.time):
        self.retention_horizon = float(retention_horizon)
        self._clock = clock
        self._fragments: Dict[Speaker, Deque[TranscriptFragment]] = {
            speaker: deque() for speaker in DIALOGUE_SPEAKERS
        }

    def append(self, fragment: TranscriptFragment) -> None:
        self._evict()
        self._fragments[fragment.speaker].append(fragment)

    def recent(self, n: int) -> List[TranscriptFragment]:
        """Last ``n`` fragments across both speakers, newest last."""
        if n <= 0:
            return []
        return self.window()[-n:]

    def window(self) -> List[TranscriptFragment]:
        """Every retained fragment, merged and ordered by capture time."""
        cutoff = self._evict()
        merged = [
            f for speaker in DIALOGUE_SPEAKERS for f in self._fragments[speaker]
            if f.captured_at >= cutoff
        ]
        merged.sort(key=lambda f: f.captured_at)
        return merged

    def speaker_view(self, speaker: Speaker) -> List[TranscriptFragment]:
        self._evict()
        return list(self._fragments[speaker])

    def clear(self, speaker: Speaker) -> None:
        self._fragments[speaker].clear()

    def __len__(self) -> int:
        self._evict()
        return sum(len(q) for q in self._fragments.values())

    def _evict(self) -> float:
        cutoff = self._clock() - self.retention_horizon
        for fragments in self._fragments.values():
            # per-speaker deques are in capture order, so expired ones are at the left
            while fragments and fragments[0].captured_at < cutoff:
                fragments.popleft()
        return cutoff
