"""
Allocation engine: distributes one expense's total across its participants.

Shares are engine-derived while the split mode is EQUAL. The first manual
edit moves the engine to CUSTOM, after which shares only change when the
caller edits them or explicitly resets to an equal split.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from config import Config
from errors import AllocationInvariantError, ValidationCode, ValidationResult
from models import Expense, ParticipantShare, SplitMode
from utils import CENT, format_currency, parse_amount, round_half_up

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


class AllocationEngine:
    """Per-participant share state for an expense being created or edited"""

    def __init__(self, total=None, payer_id: Optional[int] = None,
                 participants: Iterable[int] = (), tolerance: Optional[Decimal] = None):
        self.tolerance = Config.AMOUNT_TOLERANCE if tolerance is None else tolerance
        self._total: Optional[Decimal] = None
        self._payer_id: Optional[int] = None
        self._shares: Dict[int, Optional[Decimal]] = {}
        self._overridden = set()
        self._mode = SplitMode.EQUAL

        if payer_id is not None:
            self.set_payer(payer_id)
        if participants:
            self.set_participants(participants)
        if total is not None:
            self.set_total(total)

    @classmethod
    def from_expense(cls, expense: Expense, tolerance: Optional[Decimal] = None) -> 'AllocationEngine':
        """
        Load a stored expense for editing.

        The split counts as equal when every stored amount is within one cent
        of the first one; anything else is treated as a custom split with
        every share marked as a manual override.
        """
        engine = cls(tolerance=tolerance)
        engine._total = expense.amount
        engine._payer_id = expense.payer_id
        engine._shares = {p.participant_id: p.amount for p in expense.participants}

        amounts = [p.amount for p in expense.participants]
        first = amounts[0] if amounts else None
        is_equal = first is not None and all(
            a is not None and abs(a - first) < CENT for a in amounts
        )

        if expense.payer_id not in engine._shares:
            engine._shares[expense.payer_id] = ZERO

        if is_equal or not amounts:
            engine._recompute()
        else:
            engine._mode = SplitMode.CUSTOM
            engine._overridden = set(engine._shares)
        return engine

    # ---------- Read-only views ----------
    @property
    def total(self) -> Optional[Decimal]:
        return self._total

    @property
    def payer_id(self) -> Optional[int]:
        return self._payer_id

    @property
    def mode(self) -> SplitMode:
        return self._mode

    @property
    def participants(self) -> List[int]:
        return list(self._shares)

    def shares(self) -> Dict[int, Optional[Decimal]]:
        return dict(self._shares)

    def participant_shares(self) -> List[ParticipantShare]:
        return [
            ParticipantShare(participant_id=pid, amount=amount, overridden=pid in self._overridden)
            for pid, amount in self._shares.items()
        ]

    @property
    def allocated_total(self) -> Decimal:
        """Sum of the numeric shares entered so far"""
        return sum((a for a in self._shares.values() if a is not None), ZERO)

    @property
    def difference(self) -> Decimal:
        """Total minus allocated: positive when money is unassigned, negative on excess"""
        return (self._total or ZERO) - self.allocated_total

    # ---------- Mutations ----------
    def set_total(self, amount):
        """Set the expense total; re-derives shares only in equal mode"""
        self._total = parse_amount(amount)
        if self._mode is SplitMode.EQUAL:
            self._recompute()

    def set_participants(self, participant_ids: Iterable[int]):
        """
        Replace the participant set. The payer is always kept, removed
        participants lose their share, and newcomers start without one
        unless the split is equal.
        """
        ordered = list(dict.fromkeys(participant_ids))
        if self._payer_id is not None and self._payer_id not in ordered:
            ordered.append(self._payer_id)

        self._shares = {pid: self._shares.get(pid) for pid in ordered}
        self._overridden &= set(ordered)

        if self._mode is SplitMode.EQUAL:
            self._recompute()

    def set_payer(self, payer_id: int):
        """Change the payer, adding them as a participant if needed"""
        self._payer_id = payer_id
        if payer_id in self._shares:
            return

        self._shares[payer_id] = ZERO
        logger.debug("Payer %s added as participant", payer_id)
        if self._mode is SplitMode.EQUAL:
            self._recompute()

    def set_manual_share(self, participant_id: int, amount):
        """
        Set one participant's share by hand and switch to a custom split.
        Passing None clears the share without touching the mode.
        """
        if participant_id not in self._shares:
            raise AllocationInvariantError(f"Participant {participant_id} is not part of this expense")

        if amount is None or amount == '':
            self._shares[participant_id] = None
            self._overridden.discard(participant_id)
            return

        value = parse_amount(amount)
        if value is None:
            raise AllocationInvariantError(f"Share for participant {participant_id} is not a number: {amount!r}")
        if value < 0:
            raise AllocationInvariantError(f"Share for participant {participant_id} cannot be negative")

        self._shares[participant_id] = value
        self._overridden.add(participant_id)
        if self._mode is not SplitMode.CUSTOM:
            logger.debug("Switching to custom split after manual edit of participant %s", participant_id)
            self._mode = SplitMode.CUSTOM

    def reset_to_equal(self):
        """Drop all manual overrides and split the total equally again"""
        self._overridden.clear()
        self._mode = SplitMode.EQUAL
        self._recompute()

    def _recompute(self):
        # Each share is rounded on its own; the remainder is not redistributed.
        n = len(self._shares)
        if n == 0 or self._total is None or self._total <= 0:
            return

        share = round_half_up(self._total / n)
        for pid in self._shares:
            self._shares[pid] = share

    # ---------- Validation ----------
    def validate(self) -> ValidationResult:
        """Check the allocation; the first violated rule is reported"""
        if self._total is None or self._total <= 0:
            return ValidationResult.failure(
                ValidationCode.AMOUNT_NOT_POSITIVE, "Please enter a valid amount greater than zero"
            )

        if self._payer_id is None:
            return ValidationResult.failure(ValidationCode.PAYER_REQUIRED, "Please choose who paid")

        if not self._shares:
            return ValidationResult.failure(
                ValidationCode.NO_PARTICIPANTS, "Please select at least one participant"
            )

        for pid, amount in self._shares.items():
            if amount is None:
                return ValidationResult.failure(
                    ValidationCode.MISSING_SHARE,
                    "Please enter an amount for every participant",
                    participant_id=pid
                )

        allocated = self.allocated_total
        difference = allocated - self._total
        if abs(difference) > self.tolerance:
            direction = "exceeds" if difference > 0 else "falls short of"
            return ValidationResult.failure(
                ValidationCode.SUM_MISMATCH,
                f"Allocated total ({format_currency(allocated)}) {direction} the expense total "
                f"({format_currency(self._total)}) by {format_currency(abs(difference))}",
                allocated=allocated,
                total=self._total,
                difference=difference
            )

        return ValidationResult.success()

    def to_expense(self, name: str, date: str, expense_id: Optional[int] = None) -> Expense:
        """Build the submission payload from the current state"""
        return Expense(
            id=expense_id,
            name=name.strip(),
            amount=self._total,
            payer_id=self._payer_id,
            date=date,
            participants=self.participant_shares()
        )
