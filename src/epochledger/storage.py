"""
epochledger/storage.py

JSON snapshots of ledger state.

A snapshot is one JSON document holding the state of every named ledger
object. Restoring runs inside a journal transaction, so a snapshot that
does not match the objects leaves them untouched.

Usage:
    store = LedgerStore("~/.epochledger/ledger.json")
    store.save({"asset": asset, "aggregator": aggregator, "staking": staking})

    # later, with freshly constructed objects
    store.load({"asset": asset, "aggregator": aggregator, "staking": staking})
    aggregator.attach_component(staking)
"""

import json
import os
import time
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import InvalidStateError
from .journal import Journal, Stateful

logger = logging.getLogger("epochledger.storage")

SNAPSHOT_VERSION = 1


class LedgerStore:
    """File-backed snapshot store."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.exists()

    def save(
        self,
        participants: Mapping[str, Stateful],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Write the state of every participant."""
        document = {
            "version": SNAPSHOT_VERSION,
            "saved_at": int(time.time()),
            "metadata": metadata or {},
            "participants": {name: p.state_to_dict() for name, p in participants.items()},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, 'w') as f:
            json.dump(document, f, indent=2)
        os.replace(tmp, self.path)
        logger.debug(f"Saved {len(participants)} ledger objects to {self.path}")

    def read(self) -> Dict[str, Any]:
        with open(self.path, 'r') as f:
            document = json.load(f)
        version = document.get("version")
        if version != SNAPSHOT_VERSION:
            raise InvalidStateError(f"Unsupported snapshot version {version} in {self.path}")
        return document

    def load(self, participants: Mapping[str, Stateful]) -> Dict[str, Any]:
        """
        Restore every participant from the snapshot.

        Returns:
            The snapshot metadata
        """
        document = self.read()
        stored = document.get("participants", {})
        missing = [name for name in participants if name not in stored]
        if missing:
            raise InvalidStateError(f"Snapshot {self.path} has no state for {missing}")

        journals = {id(p.journal): p.journal for p in participants.values()}
        if len(journals) != 1:
            raise InvalidStateError("All restored objects must share one journal")
        journal: Journal = next(iter(journals.values()))

        with journal.transaction():
            for name, participant in participants.items():
                try:
                    participant.load_state(stored[name])
                except (KeyError, TypeError, ValueError) as e:
                    raise InvalidStateError(f"Invalid snapshot state for {name}: {e}") from e

        logger.info(f"Restored {len(participants)} ledger objects from {self.path}")
        return document.get("metadata", {})
