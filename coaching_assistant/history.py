"""Append-only record of questions, responses, question batches and errors."""

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from coaching_assistant.models import (
    ConversationTurn,
    EntryKind,
    EntryStatus,
    HistoryEntry,
    Speaker,
)

logger = logging.getLogger(__name__)

COMBINE_SEPARATOR = "\n\n"

_ROLES = {
    EntryKind.QUESTION: "user",
    EntryKind.RESPONSE: "assistant",
    EntryKind.QUESTION_BATCH: "assistant",
}


class HistoryLog:
    """Single source of truth for what happened during a session.

    Entries are never reordered or removed. Each entry may change status once,
    from PENDING to COMPLETED or ERROR; entries handed out are frozen
    snapshots, so readers never see a later mutation.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        on_change: Optional[Callable[[HistoryEntry], None]] = None,
    ):
        self._clock = clock
        self._on_change = on_change
        self._entries: List[HistoryEntry] = []
        self._index: Dict[int, int] = {}
        self._next_id = 1

    def append(
        self,
        kind: EntryKind,
        text: str,
        speaker: Optional[Speaker] = None,
        status: Optional[EntryStatus] = None,
    ) -> HistoryEntry:
        if status is None:
            if kind in (EntryKind.QUESTION, EntryKind.RESPONSE):
                status = EntryStatus.PENDING
            elif kind == EntryKind.ERROR:
                status = EntryStatus.ERROR
            else:
                status = EntryStatus.COMPLETED
        entry = HistoryEntry(
            entry_id=self._next_id,
            kind=kind,
            text=text,
            speaker=speaker,
            timestamp=self._clock(),
            status=status,
        )
        self._next_id += 1
        self._index[entry.entry_id] = len(self._entries)
        self._entries.append(entry)
        self._changed(entry)
        return entry

    def complete(self, entry_id: int, text: Optional[str] = None) -> HistoryEntry:
        return self._transition(entry_id, EntryStatus.COMPLETED, text)

    def fail(self, entry_id: int, detail: Optional[str] = None) -> HistoryEntry:
        return self._transition(entry_id, EntryStatus.ERROR, detail)

    def get(self, entry_id: int) -> HistoryEntry:
        try:
            return self._entries[self._index[entry_id]]
        except KeyError:
            raise KeyError(f"No history entry with id {entry_id}") from None

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def context_window(self, max_entries: int) -> List[ConversationTurn]:
        """Most recent settled entries as role-tagged conversation turns.

        Pending entries are skipped, and so are failures: an error
        description is not something the model said.
        """
        if max_entries <= 0:
            return []
        settled = [
            e for e in self._entries
            if e.status == EntryStatus.COMPLETED and e.kind in _ROLES
        ]
        return [ConversationTurn(role=_ROLES[e.kind], text=e.text) for e in settled[-max_entries:]]

    def select(self, predicate: Callable[[HistoryEntry], bool]) -> List[HistoryEntry]:
        return [e for e in self._entries if predicate(e)]

    def of_kind(self, kind: EntryKind) -> List[HistoryEntry]:
        return self.select(lambda e: e.kind == kind)

    def combine(self, entry_ids: Iterable[int], separator: str = COMBINE_SEPARATOR) -> str:
        """Join the text of the chosen Question entries, in log order."""
        wanted = set(entry_ids)
        unknown = wanted - set(self._index)
        if unknown:
            raise KeyError(f"No history entry with id {min(unknown)}")
        chosen = self.select(lambda e: e.entry_id in wanted)
        not_questions = [e.entry_id for e in chosen if e.kind != EntryKind.QUESTION]
        if not_questions:
            raise ValueError(f"Only question entries can be combined, got {not_questions}")
        return separator.join(e.text for e in chosen)

    def _transition(self, entry_id: int, status: EntryStatus, text: Optional[str]) -> HistoryEntry:
        current = self.get(entry_id)
        if current.status != EntryStatus.PENDING:
            raise ValueError(
                f"History entry {entry_id} already settled as {current.status.value}"
            )
        updated = replace(current, status=status, text=current.text if text is None else text)
        self._entries[self._index[entry_id]] = updated
        logger.debug("[HISTORY] entry %s %s -> %s", entry_id, current.kind.value, status.value)
        self._changed(updated)
        return updated

    def _changed(self, entry: HistoryEntry) -> None:
        if self._on_change is not None:
            self._on_change(entry)
