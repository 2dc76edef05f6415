"""
Bounded per-client error history and aggregate error counters
"""

from collections import defaultdict, deque
from types import MappingProxyType
from typing import Deque, Dict, Mapping, Optional, Tuple

from .models import ErrorCategory, ErrorRecord


class ErrorLedger:
    """
    Per-client FIFO history plus counters by category and by client.

    Clearing history never touches the counters, so totals keep describing
    every error the handler has seen.
    """

    def __init__(self, history_limit: int = 1000):
        self.history_limit = history_limit
        self._history: Dict[str, Deque[ErrorRecord]] = {}
        self.errors_by_category: Dict[ErrorCategory, int] = defaultdict(int)
        self.errors_by_client: Dict[str, int] = defaultdict(int)

    def record(self, record: ErrorRecord) -> None:
        client_history = self._history.get(record.client_id)
        if client_history is None:
            client_history = deque(maxlen=self.history_limit)
            self._history[record.client_id] = client_history
        client_history.append(record)

        self.errors_by_category[record.category] += 1
        self.errors_by_client[record.client_id] += 1

    def history(self, client_id: str) -> Tuple[ErrorRecord, ...]:
        return tuple(self._history.get(client_id, ()))

    def all_history(self) -> Mapping[str, Tuple[ErrorRecord, ...]]:
        return MappingProxyType({
            client_id: tuple(records) for client_id, records in self._history.items()
        })

    def latest(self, client_id: str) -> Optional[ErrorRecord]:
        client_history = self._history.get(client_id)
        return client_history[-1] if client_history else None

    def clear(self, client_id: Optional[str] = None) -> None:
        """Drop history for one client or for everyone"""
        if client_id is not None:
            self._history.pop(client_id, None)
        else:
            self._history.clear()

    def counts_by_client(self) -> Dict[str, int]:
        return dict(self.errors_by_client)

    @property
    def total_errors(self) -> int:
        return sum(self.errors_by_category.values())

    def statistics(self) -> Dict[str, object]:
        return {
            "total_errors": self.total_errors,
            "errors_by_category": {
                category.value: count for category, count in self.errors_by_category.items()
            },
            "errors_by_client": dict(self.errors_by_client),
        }

    def reset(self) -> None:
        self._history.clear()
        self.errors_by_category.clear()
        self.errors_by_client.clear()
