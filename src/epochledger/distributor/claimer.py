"""
epochledger/distributor/claimer.py

Claim rewards from several distributors in one operation.

The claimer must be an approved claimer on every distributor it lists.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..auth import Authority
from ..exceptions import RegistryError
from ..journal import Journal, Stateful, atomic

logger = logging.getLogger("epochledger.distributor.claimer")


@dataclass
class ClaimerState:
    components: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"components": list(self.components)}

    @classmethod
    def from_dict(cls, data: dict) -> "ClaimerState":
        return cls(components=list(data.get("components", [])))


class RewardClaimer(Stateful):
    """Ordered list of distributors claimed together."""

    def __init__(self, address: str, authority: Authority, journal: Optional[Journal] = None):
        self.address = address
        self.authority = authority
        self._distributors: Dict[str, Any] = {}
        self._state = ClaimerState()
        super().__init__(journal)

    @property
    def num_components(self) -> int:
        return len(self._state.components)

    def components(self, index: int) -> Optional[str]:
        """Address at `index`, None past the end."""
        if 0 <= index < len(self._state.components):
            return self._state.components[index]
        return None

    @atomic
    def add_component(self, distributor: Any, caller: str) -> None:
        self.authority.require(caller)
        self._state.components.append(distributor.address)
        self._distributors[distributor.address] = distributor
        logger.info(f"Claimer {self.address}: added {distributor.address}")

    @atomic
    def replace_component(self, index: int, distributor: Any, caller: str) -> None:
        self.authority.require(caller)
        if not 0 <= index < len(self._state.components):
            raise RegistryError(f"No component at index {index}")
        old = self._state.components[index]
        self._state.components[index] = distributor.address
        self._distributors[distributor.address] = distributor
        logger.info(f"Claimer {self.address}: replaced {old} with {distributor.address}")

    @atomic
    def remove_component(self, caller: str) -> str:
        """Remove the last component."""
        self.authority.require(caller)
        if not self._state.components:
            raise RegistryError("No components to remove")
        removed = self._state.components.pop()
        logger.info(f"Claimer {self.address}: removed {removed}")
        return removed

    @atomic
    def claim(self, caller: str, recipient: Optional[str] = None) -> int:
        """Claim the caller's rewards everywhere. Returns the total paid."""
        recipient = recipient or caller
        total = 0
        for address in self._state.components:
            total += self._distributors[address].claim(caller, caller=self.address, recipient=recipient)
        if total:
            logger.info(f"Claimer {self.address}: {caller} claimed {total} to {recipient}")
        return total
