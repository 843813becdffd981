import logging
from typing import Awaitable, Callable, Dict, Hashable, List

from models import SettlementTransfer

logger = logging.getLogger(__name__)


class TransferCache:
    """
    Server-confirmed settlement transfers, keyed by expense id
    (None holds the group-wide list).

    Refreshes are numbered when issued. A response is applied only if no
    later-issued refresh for the same key has already been applied, so
    overlapping refreshes resolve to the last one started.
    """

    def __init__(self, fetch: Callable[[Hashable], Awaitable[List[SettlementTransfer]]]):
        self._fetch = fetch
        self._entries: Dict[Hashable, List[SettlementTransfer]] = {}
        self._issued: Dict[Hashable, int] = {}
        self._applied: Dict[Hashable, int] = {}

    def get(self, key) -> List[SettlementTransfer]:
        return list(self._entries.get(key, []))

    def __contains__(self, key):
        return key in self._entries

    def set(self, key, transfers: List[SettlementTransfer]):
        """Store a list directly, superseding any refresh still in flight"""
        seq = self._issued.get(key, 0) + 1
        self._issued[key] = seq
        self._applied[key] = seq
        self._entries[key] = list(transfers)

    async def refresh(self, key) -> bool:
        """
        Re-fetch the list for key. Returns False when the response was
        dropped because a newer one had already been applied.
        Backend errors propagate and leave the cached list untouched.
        """
        seq = self._issued.get(key, 0) + 1
        self._issued[key] = seq

        transfers = await self._fetch(key)

        if seq < self._applied.get(key, 0):
            logger.debug("Dropping stale transfer refresh #%s for %r", seq, key)
            return False

        self._entries[key] = list(transfers)
        self._applied[key] = seq
        return True
