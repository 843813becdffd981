import importlib
from datetime import timezone
from decimal import Decimal

import pytest

import config
from models import Expense, PaymentStatus, SettlementTransfer
from utils import (
    amount_to_thousands,
    format_currency,
    parse_amount,
    round_half_up,
    thousands_to_amount,
)


@pytest.mark.parametrize("raw, expected", [
    ("1,500", Decimal('1500')),
    (" 12.5 ", Decimal('12.5')),
    (250, Decimal('250')),
    (0.1, Decimal('0.1')),
    ("", None),
    ("abc", None),
    ("nan", None),
    (float("inf"), None),
    (float("nan"), None),
    (Decimal("Infinity"), None),
    (True, None),
    (False, None),
    (None, None),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_round_half_up():
    assert round_half_up(Decimal('0.125')) == Decimal('0.13')
    assert round_half_up(Decimal('33333.3333')) == Decimal('33333.33')


@pytest.mark.parametrize("amount, expected", [
    (Decimal('100000'), '100.000 ₫'),
    (Decimal('33333.5'), '33.334 ₫'),
    (Decimal('-20000'), '-20.000 ₫'),
    (0, '0 ₫'),
])
def test_format_currency(amount, expected):
    assert format_currency(amount) == expected


def test_thousands_conversion():
    assert thousands_to_amount("50") == Decimal('50000')
    assert thousands_to_amount("1,5") == Decimal('15000')
    assert thousands_to_amount("") == Decimal('0')
    assert amount_to_thousands("50000") == '50'
    assert amount_to_thousands("1500") == '1.5'
    assert amount_to_thousands("") == ''


class TestWireMapping:

    def test_transfer_from_backend_payload(self):
        transfer = SettlementTransfer.from_dict({
            'id': 5, 'fromUserId': 2, 'toUserId': 1, 'fromName': 'A', 'toName': 'B',
            'amount': 12000.5, 'toBankAccount': '', 'toBankName': 'VCB',
            'payment_status': {'transaction_id': 5, 'paid': True, 'paid_at': '2026-10-19T01:00:00Z'},
        })

        assert transfer.amount == Decimal('12000.5')
        assert transfer.to_bank_account is None
        assert transfer.paid_at.tzinfo == timezone.utc
        assert transfer.to_dict()['payment_status']['paid'] is True

    def test_with_status_clears_timestamp_when_unpaid(self):
        status = PaymentStatus(transaction_id=5, paid=True)
        transfer = SettlementTransfer(id=5, from_user_id=2, to_user_id=1, amount=Decimal('1'),
                                      payment_status=status)

        unpaid = transfer.with_status(False, transfer.paid_at)

        assert not unpaid.is_paid
        assert unpaid.paid_at is None
        assert transfer.is_paid

    def test_expense_date_falls_back_to_created_at(self):
        expense = Expense.from_dict({
            'id': 1, 'name': 'Taxi', 'amount': '300', 'payer_id': '2',
            'created_at': '2026-10-18T22:15:00Z', 'participants': None,
        })

        assert expense.date == '2026-10-18'
        assert expense.payer_id == 2
        assert expense.participants == []


def test_port_read_from_environment(monkeypatch):
    monkeypatch.setenv('PORT', '6001')
    try:
        assert importlib.reload(config).Config.PORT == 6001
    finally:
        monkeypatch.delenv('PORT')
        importlib.reload(config)
