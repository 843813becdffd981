"""
Error taxonomy for the expense splitter.

User-correctable problems are reported as a ValidationResult and never
raised. Exceptions are reserved for defects in the calling code and for
failures talking to the backend.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ValidationCode(Enum):
    """Validation rules, in the order they are checked"""
    NAME_REQUIRED = 'name_required'
    AMOUNT_NOT_POSITIVE = 'amount_not_positive'
    PAYER_REQUIRED = 'payer_required'
    NO_PARTICIPANTS = 'no_participants'
    MISSING_SHARE = 'missing_share'
    SUM_MISMATCH = 'sum_mismatch'


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating an expense form"""
    ok: bool
    code: Optional[ValidationCode] = None
    message: str = ''
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls) -> 'ValidationResult':
        return cls(ok=True)

    @classmethod
    def failure(cls, code: ValidationCode, message: str, **details) -> 'ValidationResult':
        return cls(ok=False, code=code, message=message, details=details)

    def __bool__(self):
        return self.ok

    def to_dict(self):
        return {
            'ok': self.ok,
            'code': self.code.value if self.code else None,
            'message': self.message,
            'details': {k: str(v) for k, v in self.details.items()}
        }


class ExpenseSplitError(Exception):
    """Base class for all errors raised by this package"""


class AllocationInvariantError(ExpenseSplitError):
    """The allocation engine was driven with impossible input"""


class ReconcilerError(ExpenseSplitError):
    """The settlement reconciler was driven with impossible input"""


class BackendError(ExpenseSplitError):
    """A backend request failed at the transport or HTTP level"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
