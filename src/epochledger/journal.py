"""
epochledger/journal.py

Transactional state journal.

Every ledger object keeps its durable state in one dataclass at `_state`
and registers with a shared Journal. Inside a transaction the first access
to an object's `_state` saves a deep copy of it; if the block raises, every
saved state is put back, so an operation either completes or leaves no
trace. Only the objects an operation actually touches are copied, which
keeps the cost of a hook proportional to the accounts and components it
reads rather than to the whole ledger. One re-entrant lock serializes
access from multiple threads.

Usage:
    journal = Journal()
    asset = InMemoryAssetLedger(journal=journal)
    aggregator = EpochAggregator(clock, asset, authority, journal=journal)

    with journal.transaction():
        aggregator.deposit(0, amount, sender)
        ...
"""

import copy
import functools
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple

logger = logging.getLogger("epochledger.journal")

Frame = Dict[int, Tuple["Stateful", Any]]


class Journal:
    """Snapshot/restore boundary shared by all objects of one ledger."""

    def __init__(self):
        self._participants: List["Stateful"] = []
        self._lock = threading.RLock()
        self._depth = 0
        self._frames: List[Frame] = []

    def register(self, participant: "Stateful") -> None:
        with self._lock:
            if any(p is participant for p in self._participants):
                return
            self._participants.append(participant)

    @property
    def participants(self) -> List["Stateful"]:
        return list(self._participants)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def _save(self, participant: "Stateful") -> None:
        with self._lock:
            if not self._frames:
                return
            frame = self._frames[-1]
            if id(participant) not in frame:
                frame[id(participant)] = (participant, copy.deepcopy(participant.__dict__["_ledger_state"]))

    @staticmethod
    def _restore(frame: Frame) -> None:
        for participant, state in frame.values():
            participant.__dict__["_ledger_state"] = state

    @contextmanager
    def transaction(self) -> Iterator["Journal"]:
        """Commit on success, restore every touched participant on any exception."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            frame: Frame = {}
            self._frames.append(frame)
            self._depth = 1
            try:
                yield self
            except BaseException as e:
                self._restore(frame)
                logger.debug(f"Transaction rolled back: {type(e).__name__}: {e}")
                raise
            finally:
                self._frames.pop()
                self._depth = 0

    @contextmanager
    def preview(self) -> Iterator["Journal"]:
        """Run a block and always restore the prior state."""
        with self._lock:
            frame: Frame = {}
            self._frames.append(frame)
            depth = self._depth
            self._depth += 1
            try:
                yield self
            finally:
                self._restore(frame)
                self._frames.pop()
                self._depth = depth


class Stateful:
    """Base for objects whose durable state lives in `self._state`."""

    def __init__(self, journal: "Journal" = None):
        self.journal = journal if journal is not None else Journal()
        self.journal.register(self)

    def _touch(self) -> None:
        journal = self.__dict__.get("journal")
        if journal is not None and journal._frames:
            journal._save(self)

    @property
    def _state(self) -> Any:
        self._touch()
        return self.__dict__["_ledger_state"]

    @_state.setter
    def _state(self, value: Any) -> None:
        self._touch()
        self.__dict__["_ledger_state"] = value

    def state_to_dict(self) -> dict:
        return self._state.to_dict()

    def load_state(self, data: dict) -> None:
        self._state = type(self._state).from_dict(data)


def atomic(method):
    """Run a method inside a journal transaction."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.journal.transaction():
            return method(self, *args, **kwargs)
    return wrapper
