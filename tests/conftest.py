"""
Shared fixtures: sample settlement data and an in-memory backend whose
payment calls can be held open and released by the test.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from errors import BackendError
from models import Expense, ParticipantShare, PaymentStatus, SettlementTransfer, User

FIXED_NOW = datetime(2026, 10, 19, 9, 30, 0, tzinfo=timezone.utc)


class FakeBackend:
    """Stand-in for BackendClient backed by in-memory transfers and expenses"""

    def __init__(self, transfers):
        self.transfers = {t.id: t for t in transfers}
        self.hold_payments = False
        self.payment_delay = 0
        self.held = []
        self.payment_calls = []
        self.fetch_calls = 0
        self.fetch_error = None
        self.fetch_gate = None
        self.submitted = []
        self.users = [User(1, 'Phuong', '0123456789', 'VCB'), User(2, 'Thang'), User(3, 'Hoang')]
        self.expenses = {
            7: Expense(id=7, name='Lunch', amount=Decimal('90000'), payer_id=1, date='2026-10-19',
                       participants=[ParticipantShare(1, Decimal('50000')), ParticipantShare(2, Decimal('20000')),
                                     ParticipantShare(3, Decimal('20000'))]),
        }
        self.deleted = []

    async def set_payment_status(self, transfer_id, paid):
        self.payment_calls.append((transfer_id, paid))
        if self.hold_payments:
            release = asyncio.get_running_loop().create_future()
            self.held.append(release)
            await release
        if self.payment_delay:
            await asyncio.sleep(self.payment_delay)
        paid_at = FIXED_NOW if paid else None
        self.transfers[transfer_id] = self.transfers[transfer_id].with_status(paid, paid_at)
        return PaymentStatus(transaction_id=transfer_id, paid=paid, paid_at=paid_at)

    def release(self, index=0, error=None):
        future = self.held.pop(index)
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(None)

    async def fetch_transfers(self, key):
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.transfers.values())

    async def get_users(self):
        return list(self.users)

    async def get_expenses(self):
        return list(self.expenses.values())

    async def fetch_expense(self, expense_id):
        if expense_id not in self.expenses:
            raise BackendError(f"GET /expenses/{expense_id} failed with status 404", status=404)
        return self.expenses[expense_id]

    async def delete_expense(self, expense_id):
        if expense_id not in self.expenses:
            raise BackendError(f"DELETE /expenses/{expense_id} failed with status 404", status=404)
        del self.expenses[expense_id]
        self.deleted.append(expense_id)

    async def submit_expense(self, expense):
        self.submitted.append(expense)
        stored_id = expense.id if expense.id is not None else 99
        return Expense(
            id=stored_id,
            name=expense.name,
            amount=expense.amount,
            payer_id=expense.payer_id,
            date=expense.date,
            participants=expense.participants
        )


@pytest.fixture
def sample_transfers():
    """Two unpaid transfers and one already settled"""
    return [
        SettlementTransfer(id=1, from_user_id=2, to_user_id=1, amount=Decimal('30000'),
                           from_name='Thang', to_name='Phuong',
                           to_bank_account='0123456789', to_bank_name='VCB'),
        SettlementTransfer(id=2, from_user_id=3, to_user_id=1, amount=Decimal('30000'),
                           from_name='Hoang', to_name='Phuong'),
        SettlementTransfer(id=3, from_user_id=4, to_user_id=1, amount=Decimal('15000'),
                           from_name='Giang', to_name='Phuong',
                           payment_status=PaymentStatus(transaction_id=3, paid=True, paid_at=FIXED_NOW)),
    ]


@pytest.fixture
def fake_backend(sample_transfers):
    return FakeBackend(sample_transfers)


@pytest.fixture
def fixed_now():
    return FIXED_NOW
