import itertools
import threading
from typing import Any


class InMemoryStore:
    def __init__(self) -> None:
        self.incomes: dict[int, dict[str, Any]] = {}
        self.fixed_expenses: dict[int, dict[str, Any]] = {}
        self.variable_expenses: dict[int, dict[str, Any]] = {}
        self.savings_goals: dict[int, dict[str, Any]] = {}
        self.settings: dict[str, dict[str, Any]] = {}
        self.users: dict[int, dict[str, Any]] = {}
        self.lock = threading.RLock()
        self._sequences: dict[str, itertools.count] = {}

    def next_id(self, table: str) -> int:
        with self.lock:
            if table not in self._sequences:
                self._sequences[table] = itertools.count(1)
            return next(self._sequences[table])
