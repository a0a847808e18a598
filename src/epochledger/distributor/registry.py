"""
epochledger/distributor/registry.py

Ordered registry of reward components.

Components form a singly linked cycle through COMPONENTS_SENTINEL:

    SENTINEL -> c1 -> c2 -> ... -> cN -> SENTINEL

Insert-after and removal given the previous id are O(1). Removed
components keep their record so their claim cursor survives and is
reused if they are added again.
"""

import logging
from collections import namedtuple
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterator, List, Optional, Tuple

from ..config import COMPONENTS_SENTINEL, MAX_NUM_COMPONENTS
from ..exceptions import RegistryError, UnknownComponentError
from ..journal import Journal, Stateful, atomic

logger = logging.getLogger("epochledger.distributor.registry")


ComponentInfo = namedtuple("ComponentInfo", ["next", "cursor", "numerator", "denominator"])


@dataclass
class ComponentRecord:
    """Registry entry of one component."""
    next: Optional[str] = None     # None while not in the list
    cursor: int = 0                # next epoch the component may claim
    numerator: int = 0
    denominator: int = 0

    @property
    def active(self) -> bool:
        return self.next is not None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ComponentRecord":
        return cls(
            next=data.get("next"),
            cursor=int(data.get("cursor", 0)),
            numerator=int(data.get("numerator", 0)),
            denominator=int(data.get("denominator", 0)),
        )


@dataclass
class RegistryState:
    records: Dict[str, ComponentRecord] = field(
        default_factory=lambda: {COMPONENTS_SENTINEL: ComponentRecord(next=COMPONENTS_SENTINEL)}
    )
    size: int = 0

    def to_dict(self) -> dict:
        return {
            "records": {k: v.to_dict() for k, v in self.records.items()},
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RegistryState":
        state = cls(
            records={k: ComponentRecord.from_dict(v) for k, v in data.get("records", {}).items()},
            size=int(data.get("size", 0)),
        )
        state.records.setdefault(COMPONENTS_SENTINEL, ComponentRecord(next=COMPONENTS_SENTINEL))
        return state


class ComponentRegistry(Stateful):
    """Sentinel-headed linked list of components with per-component scale."""

    def __init__(self, max_components: int = MAX_NUM_COMPONENTS, journal: Optional[Journal] = None):
        if max_components <= 0:
            raise ValueError(f"max_components must be positive, got {max_components}")
        self.max_components = max_components
        self._state = RegistryState()
        super().__init__(journal)

    # ========== Queries ==========

    def __len__(self) -> int:
        return self._state.size

    def __contains__(self, component_id: str) -> bool:
        return self.is_active(component_id)

    def __iter__(self) -> Iterator[str]:
        records = self._state.records
        current = records[COMPONENTS_SENTINEL].next
        while current != COMPONENTS_SENTINEL:
            yield current
            current = records[current].next

    def items(self) -> Iterator[Tuple[str, ComponentRecord]]:
        for component_id in self:
            yield component_id, self._state.records[component_id]

    def ids(self) -> List[str]:
        return list(self)

    def is_known(self, component_id: str) -> bool:
        return component_id != COMPONENTS_SENTINEL and component_id in self._state.records

    def is_active(self, component_id: str) -> bool:
        return self.is_known(component_id) and self._state.records[component_id].active

    def record(self, component_id: str) -> ComponentRecord:
        if not self.is_known(component_id):
            raise UnknownComponentError(f"Component {component_id} was never registered")
        return self._state.records[component_id]

    def info(self, component_id: str) -> ComponentInfo:
        """(next, cursor, numerator, denominator); unknown ids read as all empty."""
        rec = self._state.records.get(component_id)
        if rec is None or component_id == COMPONENTS_SENTINEL:
            return ComponentInfo(None, 0, 0, 0)
        return ComponentInfo(rec.next, rec.cursor, rec.numerator, rec.denominator)

    def find_previous(self, component_id: str) -> str:
        """Id whose `next` is component_id (possibly the sentinel)."""
        if not self.is_active(component_id):
            raise RegistryError(f"Component {component_id} is not in the registry")
        previous = COMPONENTS_SENTINEL
        for current in self:
            if current == component_id:
                return previous
            previous = current
        raise RegistryError(f"Registry list is broken around {component_id}")

    # ========== Mutations ==========

    @staticmethod
    def _check_scale(numerator: int, denominator: int) -> None:
        if numerator < 1 or denominator < 1:
            raise RegistryError(f"Invalid scale {numerator}/{denominator}")

    @atomic
    def insert(
        self,
        component_id: str,
        after: str = COMPONENTS_SENTINEL,
        numerator: int = 1,
        denominator: int = 1,
        cursor: int = 0,
    ) -> ComponentRecord:
        """Insert a component after `after`. Returns its record."""
        if not component_id or component_id == COMPONENTS_SENTINEL:
            raise RegistryError(f"Invalid component id {component_id!r}")
        if self.is_active(component_id):
            raise RegistryError(f"Component {component_id} is already registered")
        if self._state.size >= self.max_components:
            raise RegistryError(f"Registry is full ({self.max_components} components)")
        if after != COMPONENTS_SENTINEL and not self.is_active(after):
            raise RegistryError(f"Cannot insert after {after}: not in the registry")
        self._check_scale(numerator, denominator)

        records = self._state.records
        rec = records.get(component_id)
        if rec is None:
            rec = ComponentRecord(cursor=cursor)
            records[component_id] = rec
        rec.numerator = numerator
        rec.denominator = denominator
        rec.next = records[after].next
        records[after].next = component_id
        self._state.size += 1
        logger.debug(f"Inserted {component_id} after {after} (cursor={rec.cursor})")
        return rec

    @atomic
    def remove(self, component_id: str, previous: Optional[str] = None) -> ComponentRecord:
        """Unlink a component; its record and cursor are kept."""
        if not self.is_active(component_id):
            raise RegistryError(f"Component {component_id} is not in the registry")
        if previous is None:
            previous = self.find_previous(component_id)

        records = self._state.records
        if previous not in records or records[previous].next != component_id:
            raise RegistryError(f"{previous} does not precede {component_id}")

        rec = records[component_id]
        records[previous].next = rec.next
        rec.next = None
        rec.numerator = 0
        rec.denominator = 0
        self._state.size -= 1
        logger.debug(f"Removed {component_id} (cursor={rec.cursor})")
        return rec

    @atomic
    def set_scale(self, component_id: str, numerator: int, denominator: int) -> None:
        if not self.is_active(component_id):
            raise RegistryError(f"Component {component_id} is not in the registry")
        self._check_scale(numerator, denominator)
        rec = self._state.records[component_id]
        rec.numerator = numerator
        rec.denominator = denominator

    @atomic
    def advance_cursor(self, component_id: str) -> int:
        rec = self.record(component_id)
        rec.cursor += 1
        return rec.cursor
