import asyncio
import json
import logging
from typing import List, Optional

import aiohttp

from config import Config
from errors import BackendError
from models import Expense, PaymentStatus, SettlementTransfer, User

logger = logging.getLogger(__name__)


class BackendClient:
    """Async REST client for the expense backend"""

    def __init__(self, base_url: str = None, timeout: float = None):
        self.base_url = (base_url or Config.API_BASE_URL).rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout or Config.REQUEST_TIMEOUT)

    async def _request(self, method: str, path: str, payload: dict = None):
        """Send one request and return the decoded JSON body (None if empty)"""
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, json=payload) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.error("%s %s failed with %s: %s", method, url, response.status, body[:200])
                        raise BackendError(f"{method} {path} failed with status {response.status}",
                                           status=response.status)
                    body = await response.text()
                    return json.loads(body) if body.strip() else None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise BackendError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            logger.error("%s %s returned invalid JSON: %s", method, url, e)
            raise BackendError(f"{method} {path} returned invalid JSON") from e

    async def get_users(self) -> List[User]:
        """Retrieve all group members"""
        data = await self._request('GET', '/users')
        return [User.from_dict(u) for u in data or []]

    async def get_expenses(self) -> List[Expense]:
        """Retrieve all expenses"""
        data = await self._request('GET', '/expenses')
        return [Expense.from_dict(e) for e in data or []]

    async def fetch_expense(self, expense_id: int) -> Expense:
        """Retrieve a specific expense with its participant shares"""
        data = await self._request('GET', f'/expenses/{expense_id}')
        return Expense.from_dict(data)

    async def fetch_settlement_transfers(self, expense_id: int) -> List[SettlementTransfer]:
        """Retrieve the settlement transfers computed for one expense"""
        data = await self._request('GET', f'/summary/expense/{expense_id}')
        return [SettlementTransfer.from_dict(t) for t in (data or {}).get('transactions', [])]

    async def fetch_group_transfers(self) -> List[SettlementTransfer]:
        """Retrieve the settlement transfers for the whole group"""
        data = await self._request('GET', '/summary')
        return [SettlementTransfer.from_dict(t) for t in (data or {}).get('transactions', [])]

    async def submit_expense(self, expense: Expense) -> Expense:
        """Create the expense, or update it when it already has an id"""
        payload = expense.to_dict()
        payload.pop('id', None)
        if expense.id is None:
            data = await self._request('POST', '/expenses', payload)
        else:
            data = await self._request('PUT', f'/expenses/{expense.id}', payload)
        return Expense.from_dict(data)

    async def delete_expense(self, expense_id: int) -> None:
        """Delete an expense"""
        await self._request('DELETE', f'/expenses/{expense_id}')

    async def set_payment_status(self, transfer_id: int, paid: bool) -> PaymentStatus:
        """Mark a settlement transfer as paid or unpaid"""
        body = await self._request('POST', f'/summary/payment/{transfer_id}', {'paid': paid})
        try:
            data = dict(body or {})
            data.setdefault('transaction_id', transfer_id)
            data.setdefault('paid', paid)
            return PaymentStatus.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.error("Unreadable payment status for transfer %s: %r", transfer_id, body)
            raise BackendError(f"Payment status for transfer {transfer_id} could not be read") from e

    async def fetch_transfers(self, expense_id: Optional[int]) -> List[SettlementTransfer]:
        """Transfers for one expense, or for the whole group when expense_id is None"""
        if expense_id is None:
            return await self.fetch_group_transfers()
        return await self.fetch_settlement_transfers(expense_id)
