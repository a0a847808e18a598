"""
epochledger/auth.py

Administrator capability check shared by every privileged setter.

A caller is authorized when it is the management account and has not been
blacklisted.
"""

import logging
from typing import Iterable, Set

from .exceptions import UnauthorizedError

logger = logging.getLogger("epochledger.auth")


class Authority:
    """Management account plus blacklist."""

    def __init__(self, management: str, blacklist: Iterable[str] = ()):
        if not management:
            raise ValueError("management account is required")
        self.management = management
        self._blacklist: Set[str] = set(blacklist)

    def is_blacklisted(self, account: str) -> bool:
        return account in self._blacklist

    def is_authorized(self, caller: str) -> bool:
        return caller == self.management and caller not in self._blacklist

    def require(self, caller: str) -> None:
        if not self.is_authorized(caller):
            raise UnauthorizedError(f"{caller} is not authorized")

    def set_blacklisted(self, account: str, flag: bool, caller: str) -> None:
        self.require(caller)
        if flag:
            self._blacklist.add(account)
        else:
            self._blacklist.discard(account)
        logger.info(f"Blacklist updated: {account} -> {flag}")
