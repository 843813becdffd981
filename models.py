from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List


def _decimal(value) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    return Decimal(str(value))


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    # Backend sends ISO strings, sometimes with a trailing Z
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


class SplitMode(Enum):
    """How an expense's shares were produced"""
    EQUAL = 'equal'
    CUSTOM = 'custom'


@dataclass
class User:
    """A group member"""
    id: int
    name: str
    bank_account: Optional[str] = None
    bank_name: Optional[str] = None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'bank_account': self.bank_account,
            'bank_name': self.bank_name
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'User':
        return cls(
            id=int(data['id']),
            name=data.get('name', ''),
            bank_account=data.get('bank_account') or None,
            bank_name=data.get('bank_name') or None
        )


@dataclass
class ParticipantShare:
    """One participant's allocated part of an expense"""
    participant_id: int
    amount: Optional[Decimal]
    overridden: bool = False

    def to_dict(self):
        return {
            'user_id': self.participant_id,
            'amount': float(self.amount) if self.amount is not None else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ParticipantShare':
        return cls(
            participant_id=int(data['user_id']),
            amount=_decimal(data.get('amount'))
        )


@dataclass
class Expense:
    """Represents an expense record"""
    id: Optional[int]
    name: str
    amount: Decimal
    payer_id: int
    date: str  # YYYY-MM-DD
    participants: List[ParticipantShare] = field(default_factory=list)

    def to_dict(self):
        data = {
            'name': self.name,
            'amount': float(self.amount),
            'payer_id': self.payer_id,
            'date': self.date,
            'participants': [p.to_dict() for p in self.participants]
        }
        if self.id is not None:
            data['id'] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Expense':
        date = data.get('date') or ''
        if not date and data.get('created_at'):
            date = _parse_timestamp(data['created_at']).date().isoformat()
        return cls(
            id=data.get('id'),
            name=data.get('name', ''),
            amount=_decimal(data.get('amount')) or Decimal('0'),
            payer_id=int(data['payer_id']),
            date=date[:10],
            participants=[ParticipantShare.from_dict(p) for p in data.get('participants') or []]
        )


@dataclass
class PaymentStatus:
    """Backend-owned paid flag for a settlement transfer"""
    transaction_id: int
    paid: bool
    paid_at: Optional[datetime] = None

    def to_dict(self):
        return {
            'transaction_id': self.transaction_id,
            'paid': self.paid,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PaymentStatus':
        return cls(
            transaction_id=int(data['transaction_id']),
            paid=bool(data.get('paid', False)),
            paid_at=_parse_timestamp(data.get('paid_at'))
        )


@dataclass(frozen=True)
class SettlementTransfer:
    """A directed payment obligation produced by the backend"""
    id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    from_name: str = ''
    to_name: str = ''
    to_bank_account: Optional[str] = None
    to_bank_name: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None

    @property
    def is_paid(self) -> bool:
        return bool(self.payment_status and self.payment_status.paid)

    @property
    def paid_at(self) -> Optional[datetime]:
        return self.payment_status.paid_at if self.payment_status else None

    def with_status(self, paid: bool, paid_at: Optional[datetime]) -> 'SettlementTransfer':
        """Copy of this transfer carrying a different payment status"""
        status = PaymentStatus(transaction_id=self.id, paid=paid, paid_at=paid_at if paid else None)
        return replace(self, payment_status=status)

    def to_dict(self):
        return {
            'id': self.id,
            'fromUserId': self.from_user_id,
            'toUserId': self.to_user_id,
            'fromName': self.from_name,
            'toName': self.to_name,
            'amount': float(self.amount),
            'toBankAccount': self.to_bank_account,
            'toBankName': self.to_bank_name,
            'payment_status': self.payment_status.to_dict() if self.payment_status else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SettlementTransfer':
        status = data.get('payment_status')
        return cls(
            id=int(data['id']),
            from_user_id=int(data['fromUserId']),
            to_user_id=int(data['toUserId']),
            amount=_decimal(data.get('amount')) or Decimal('0'),
            from_name=data.get('fromName', ''),
            to_name=data.get('toName', ''),
            to_bank_account=data.get('toBankAccount') or None,
            to_bank_name=data.get('toBankName') or None,
            payment_status=PaymentStatus.from_dict(status) if status else None
        )
