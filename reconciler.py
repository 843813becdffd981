"""
Optimistic paid/unpaid toggling for settlement transfers.

A toggle installs a speculative patch immediately, so the new status is
visible before the backend answers. Each toggle's guess is removed once its
mutation settles and the authoritative list has been fetched again; on
failure this re-fetch is what rolls the view back to server truth.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from cache import TransferCache
from errors import BackendError, ReconcilerError
from models import SettlementTransfer

logger = logging.getLogger(__name__)


class ReconcilerState(Enum):
    IDLE = 'idle'
    PENDING = 'pending'


@dataclass(frozen=True)
class PaidGuess:
    """One toggle's intended paid flag"""
    generation: int
    paid: bool
    submitted_at: datetime


@dataclass(frozen=True)
class SpeculativePatch:
    """
    Not-yet-confirmed paid flags laid over a snapshot of the authoritative
    list. Each toggle replaces the patch, carrying over the guesses of
    earlier toggles that are still in flight so they stay visible.
    """
    generation: int
    snapshot: Tuple[SettlementTransfer, ...]
    guesses: Dict[int, PaidGuess] = field(default_factory=dict)

    def apply(self) -> List[SettlementTransfer]:
        view = []
        for t in self.snapshot:
            guess = self.guesses.get(t.id)
            view.append(t.with_status(guess.paid, guess.submitted_at) if guess else t)
        return view


class SettlementReconciler:
    """Displayed settlement transfers for one expense (or the whole group)"""

    def __init__(self, cache: TransferCache, client, key=None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.cache = cache
        self.client = client
        self.key = key
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._patch: Optional[SpeculativePatch] = None
        self._generation = 0
        self._in_flight = set()

    @property
    def state(self) -> ReconcilerState:
        return ReconcilerState.PENDING if self._patch is not None else ReconcilerState.IDLE

    @property
    def patch(self) -> Optional[SpeculativePatch]:
        return self._patch

    @property
    def pending_count(self) -> int:
        return len(self._in_flight)

    def current_view(self) -> List[SettlementTransfer]:
        if self._patch is not None:
            return self._patch.apply()
        return self.cache.get(self.key)

    def completed_count(self) -> int:
        return sum(1 for t in self.current_view() if t.is_paid)

    def all_completed(self) -> bool:
        return all(t.is_paid for t in self.current_view())

    def toggle_paid(self, transfer_id: int, paid: bool) -> 'asyncio.Task[bool]':
        """
        Mark a transfer paid or unpaid. Must be called from the running
        event loop. The returned task resolves to True when the backend
        accepted the change and False when it did not.
        """
        authoritative = self.cache.get(self.key)
        if not any(t.id == transfer_id for t in authoritative):
            raise ReconcilerError(f"Transfer {transfer_id} is not in the list for {self.key!r}")

        loop = asyncio.get_running_loop()

        self._generation += 1
        guesses = dict(self._patch.guesses) if self._patch is not None else {}
        guesses[transfer_id] = PaidGuess(self._generation, paid, self._clock())
        patch = SpeculativePatch(generation=self._generation, snapshot=tuple(authoritative), guesses=guesses)
        self._patch = patch

        task = loop.create_task(self._settle(patch.generation, transfer_id, paid))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def wait_idle(self):
        """Wait until every toggle issued so far has settled"""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight))

    async def _settle(self, generation: int, transfer_id: int, paid: bool) -> bool:
        try:
            status = await self.client.set_payment_status(transfer_id, paid)
        except Exception as e:
            if isinstance(e, BackendError):
                logger.warning("Payment status update for transfer %s failed: %s", transfer_id, e)
            else:
                logger.exception("Unexpected error updating payment status for transfer %s", transfer_id)
            self._release(generation)
            await self._refresh()
            self._rebase()
            return False

        logger.info("Transfer %s marked %s", status.transaction_id, 'paid' if status.paid else 'unpaid')
        # The guess stays on screen until the fresh list has arrived.
        await self._refresh()
        self._release(generation)
        return True

    def _release(self, generation: int):
        """Drop one toggle's guess; the patch is discarded with the last one"""
        patch = self._patch
        if patch is None:
            return

        guesses = {tid: g for tid, g in patch.guesses.items() if g.generation != generation}
        if not guesses:
            self._patch = None
            return
        self._patch = replace(patch, snapshot=tuple(self.cache.get(self.key)), guesses=guesses)

    def _rebase(self):
        if self._patch is not None:
            self._patch = replace(self._patch, snapshot=tuple(self.cache.get(self.key)))

    async def _refresh(self):
        try:
            await self.cache.refresh(self.key)
        except BackendError as e:
            logger.error("Could not refresh transfers for %r: %s", self.key, e)
