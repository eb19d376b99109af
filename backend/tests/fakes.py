"""In-memory stand-ins used by the engine tests."""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

from fintrack.core.exceptions import (
    ApprovalAlreadyDecidedError,
    DuplicateOccurrenceError,
    NotFoundError,
)
from fintrack.recurring.models import Frequency, PendingApproval, RecurringRule
from fintrack.transactions.models import Transaction, TransactionType


def make_rule(**overrides) -> RecurringRule:
    fields = dict(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        category_id=None,
        amount=Decimal("25.00"),
        description="Gym membership",
        type=TransactionType.EXPENSE,
        frequency=Frequency.DAILY,
        day_of_week=None,
        day_of_month=None,
        requires_approval=False,
        is_active=True,
        start_date=date(2024, 1, 1),
        end_date=None,
        last_generated_date=None,
    )
    fields.update(overrides)
    return RecurringRule(**fields)


class InMemoryRecurrenceStore:
    """RecurrenceStore keeping everything in dicts.

    ``atomic()`` snapshots state and restores it when the block raises.
    Failures can be injected per method, optionally for a single rule, and
    methods listed in ``slow`` sleep long enough to trip any test timeout.
    Listing ``"commit"`` there stalls the end of every ``atomic()`` block.
    """

    def __init__(self, rules=()):
        self.rules: dict[uuid.UUID, RecurringRule] = {r.id: r for r in rules}
        self.transactions: list[Transaction] = []
        self.approvals: dict[uuid.UUID, PendingApproval] = {}
        self.failures: dict[tuple[str, uuid.UUID | None], Exception] = {}
        self.slow: set[str] = set()
        self.commits = 0
        self.rollbacks = 0

    def fail(self, method: str, error: Exception, rule_id: uuid.UUID | None = None) -> None:
        self.failures[(method, rule_id)] = error

    async def _enter(self, method: str, rule_id: uuid.UUID | None = None) -> None:
        if method in self.slow:
            await asyncio.sleep(10)
        for key in ((method, rule_id), (method, None)):
            if key in self.failures:
                raise self.failures[key]

    def _snapshot(self):
        return (
            list(self.transactions),
            {a.id: (a.is_approved, a.approved_at) for a in self.approvals.values()},
            dict(self.approvals),
            {r.id: r.last_generated_date for r in self.rules.values()},
        )

    def _restore(self, snapshot) -> None:
        transactions, decisions, approvals, markers = snapshot
        self.transactions = transactions
        self.approvals = approvals
        for approval_id, (is_approved, approved_at) in decisions.items():
            self.approvals[approval_id].is_approved = is_approved
            self.approvals[approval_id].approved_at = approved_at
        for rule_id, marker in markers.items():
            self.rules[rule_id].last_generated_date = marker

    @asynccontextmanager
    async def atomic(self):
        snapshot = self._snapshot()
        try:
            yield
            if "commit" in self.slow:
                await asyncio.sleep(10)
        except BaseException:
            self._restore(snapshot)
            self.rollbacks += 1
            raise
        self.commits += 1

    # Reads

    async def list_active_rules(self, user_id):
        await self._enter("list_active_rules")
        return [r for r in self.rules.values() if r.user_id == user_id and r.is_active]

    async def get_rule(self, rule_id):
        await self._enter("get_rule", rule_id)
        if rule_id not in self.rules:
            raise NotFoundError("RecurringRule", str(rule_id))
        return self.rules[rule_id]

    async def get_approval(self, approval_id):
        await self._enter("get_approval")
        if approval_id not in self.approvals:
            raise NotFoundError("PendingApproval", str(approval_id))
        return self.approvals[approval_id]

    async def find_approval(self, rule_id, scheduled_date):
        await self._enter("find_approval", rule_id)
        for approval in self.approvals.values():
            if approval.rule_id == rule_id and approval.scheduled_date == scheduled_date:
                return approval
        return None

    async def get_transaction(self, rule_id, on):
        await self._enter("get_transaction", rule_id)
        for transaction in self.transactions:
            if transaction.recurring_rule_id == rule_id and transaction.date == on:
                return transaction
        raise NotFoundError("Transaction", f"{rule_id}/{on.isoformat()}")

    # Writes

    async def insert_transaction(self, rule, on):
        await self._enter("insert_transaction", rule.id)
        if any(t.recurring_rule_id == rule.id and t.date == on for t in self.transactions):
            raise DuplicateOccurrenceError(str(rule.id), on.isoformat())
        transaction = Transaction(
            id=uuid.uuid4(),
            user_id=rule.user_id,
            category_id=rule.category_id,
            amount=rule.amount,
            description=rule.description,
            type=rule.type,
            date=on,
            recurring_rule_id=rule.id,
        )
        self.transactions.append(transaction)
        return transaction

    async def insert_pending_approval(self, rule, scheduled_date):
        await self._enter("insert_pending_approval", rule.id)
        if any(
            a.rule_id == rule.id and a.scheduled_date == scheduled_date
            for a in self.approvals.values()
        ):
            raise DuplicateOccurrenceError(str(rule.id), scheduled_date.isoformat())
        approval = PendingApproval(
            id=uuid.uuid4(),
            user_id=rule.user_id,
            rule_id=rule.id,
            scheduled_date=scheduled_date,
            is_approved=None,
            approved_at=None,
        )
        self.approvals[approval.id] = approval
        return approval

    async def update_rule_marker(self, rule_id, on):
        await self._enter("update_rule_marker", rule_id)
        if rule_id not in self.rules:
            raise NotFoundError("RecurringRule", str(rule_id))
        self.rules[rule_id].last_generated_date = on

    async def decide_approval(self, approval_id, approved, decided_at):
        await self._enter("decide_approval")
        approval = self.approvals[approval_id]
        if approval.is_approved is not None:
            raise ApprovalAlreadyDecidedError(str(approval_id))
        approval.is_approved = approved
        approval.approved_at = decided_at
