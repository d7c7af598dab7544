import time
from dataclasses import dataclass, asdict


METHOD_DIRECT = "direct"
METHOD_QUEUED = "queued"
METHOD_TEST_MODE = "test-mode"
METHOD_DROPPED = "dropped"


@dataclass
class HistoryEntry:
    action: str
    description: str
    success: bool
    method: str
    error: str | None = None
    id: int = 0
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class ExecutionHistory:
    def __init__(self, max_entries: int = 50):
        self.max_entries = max(1, int(max_entries))
        self._entries: list[HistoryEntry] = []
        self._next_id = 1

    def __len__(self):
        return len(self._entries)

    def push(self, entry: HistoryEntry) -> HistoryEntry:
        entry.id = self._next_id
        self._next_id += 1
        entry.timestamp = time.time()
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            self._entries = self._entries[-self.max_entries :]
        return entry

    def entries(self) -> list[HistoryEntry]:
        return list(reversed(self._entries))

    def get_last(self) -> HistoryEntry | None:
        if not self._entries:
            return None
        return self._entries[-1]

    def failures(self) -> list[HistoryEntry]:
        return [e for e in reversed(self._entries) if not e.success]

    def clear(self):
        self._entries.clear()
