"""Storage collaborator used by the recurrence engine.

The engine only talks to storage through :class:`RecurrenceStore`. The
SQLAlchemy implementation below hands out *detached* rule and approval
objects: a rolled-back unit of work expires everything attached to the
session, and the engine keeps reading the remaining rules of a batch after
one of them fails.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager, contextmanager
from datetime import date, datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.core.exceptions import (
    ApprovalAlreadyDecidedError,
    DuplicateOccurrenceError,
    NotFoundError,
    StorageUnavailableError,
)
from fintrack.recurring.models import PendingApproval, RecurringRule
from fintrack.transactions.models import Transaction


class RecurrenceStore(Protocol):
    def atomic(self) -> AbstractAsyncContextManager[None]:
        """Commit on normal exit, roll back on error."""
        ...

    async def list_active_rules(self, user_id: uuid.UUID) -> list[RecurringRule]: ...

    async def get_rule(self, rule_id: uuid.UUID) -> RecurringRule: ...

    async def get_approval(self, approval_id: uuid.UUID) -> PendingApproval: ...

    async def find_approval(
        self, rule_id: uuid.UUID, scheduled_date: date
    ) -> PendingApproval | None: ...

    async def get_transaction(self, rule_id: uuid.UUID, on: date) -> Transaction: ...

    async def insert_transaction(self, rule: RecurringRule, on: date) -> Transaction: ...

    async def insert_pending_approval(
        self, rule: RecurringRule, scheduled_date: date
    ) -> PendingApproval: ...

    async def update_rule_marker(self, rule_id: uuid.UUID, on: date) -> None: ...

    async def decide_approval(
        self, approval_id: uuid.UUID, approved: bool, decided_at: datetime
    ) -> None: ...


@contextmanager
def _storage_errors():
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        raise StorageUnavailableError(f"Storage error: {exc.orig}") from exc


class SQLAlchemyRecurrenceStore:
    """RecurrenceStore backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self._db = db

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        try:
            yield
            with _storage_errors():
                await self._db.commit()
        except BaseException:
            await self._db.rollback()
            raise

    def _detach(self, obj):
        self._db.expunge(obj)
        return obj

    async def list_active_rules(self, user_id: uuid.UUID) -> list[RecurringRule]:
        with _storage_errors():
            result = await self._db.execute(
                select(RecurringRule)
                .where(
                    RecurringRule.user_id == user_id,
                    RecurringRule.is_active == True,  # noqa: E712
                )
                .order_by(RecurringRule.created_at, RecurringRule.id)
            )
            return [self._detach(rule) for rule in result.scalars().all()]

    async def get_rule(self, rule_id: uuid.UUID) -> RecurringRule:
        with _storage_errors():
            result = await self._db.execute(
                select(RecurringRule).where(RecurringRule.id == rule_id)
            )
            rule = result.scalar_one_or_none()
        if rule is None:
            raise NotFoundError("RecurringRule", str(rule_id))
        return self._detach(rule)

    async def get_approval(self, approval_id: uuid.UUID) -> PendingApproval:
        with _storage_errors():
            result = await self._db.execute(
                select(PendingApproval).where(PendingApproval.id == approval_id)
            )
            approval = result.scalar_one_or_none()
        if approval is None:
            raise NotFoundError("PendingApproval", str(approval_id))
        return self._detach(approval)

    async def find_approval(
        self, rule_id: uuid.UUID, scheduled_date: date
    ) -> PendingApproval | None:
        with _storage_errors():
            result = await self._db.execute(
                select(PendingApproval).where(
                    PendingApproval.rule_id == rule_id,
                    PendingApproval.scheduled_date == scheduled_date,
                )
            )
            approval = result.scalar_one_or_none()
        return self._detach(approval) if approval is not None else None

    async def get_transaction(self, rule_id: uuid.UUID, on: date) -> Transaction:
        # Left attached, like a freshly inserted transaction.
        with _storage_errors():
            result = await self._db.execute(
                select(Transaction).where(
                    Transaction.recurring_rule_id == rule_id,
                    Transaction.date == on,
                )
            )
            transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundError("Transaction", f"{rule_id}/{on.isoformat()}")
        return transaction

    async def insert_transaction(self, rule: RecurringRule, on: date) -> Transaction:
        rule_id = rule.id
        with _storage_errors():
            existing = await self._db.execute(
                select(Transaction.id).where(
                    Transaction.recurring_rule_id == rule_id,
                    Transaction.date == on,
                )
            )
            if existing.first() is not None:
                raise DuplicateOccurrenceError(str(rule_id), on.isoformat())

            transaction = Transaction(
                user_id=rule.user_id,
                category_id=rule.category_id,
                amount=rule.amount,
                description=rule.description,
                type=rule.type,
                date=on,
                recurring_rule_id=rule_id,
            )
            self._db.add(transaction)
            try:
                await self._db.flush()
            except IntegrityError as exc:
                raise DuplicateOccurrenceError(str(rule_id), on.isoformat()) from exc
        return transaction

    async def insert_pending_approval(
        self, rule: RecurringRule, scheduled_date: date
    ) -> PendingApproval:
        # A failed flush expires attached objects, so read the key up front.
        rule_id = rule.id
        approval = PendingApproval(
            user_id=rule.user_id,
            rule_id=rule_id,
            scheduled_date=scheduled_date,
            is_approved=None,
        )
        self._db.add(approval)
        with _storage_errors():
            try:
                await self._db.flush()
            except IntegrityError as exc:
                raise DuplicateOccurrenceError(str(rule_id), scheduled_date.isoformat()) from exc
        return approval

    async def update_rule_marker(self, rule_id: uuid.UUID, on: date) -> None:
        with _storage_errors():
            result = await self._db.execute(
                update(RecurringRule)
                .where(RecurringRule.id == rule_id)
                .values(last_generated_date=on)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise NotFoundError("RecurringRule", str(rule_id))

    async def decide_approval(
        self, approval_id: uuid.UUID, approved: bool, decided_at: datetime
    ) -> None:
        with _storage_errors():
            result = await self._db.execute(
                update(PendingApproval)
                .where(
                    PendingApproval.id == approval_id,
                    PendingApproval.is_approved.is_(None),
                )
                .values(is_approved=approved, approved_at=decided_at)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise ApprovalAlreadyDecidedError(str(approval_id))
