"""Recurrence engine.

Three cooperating pieces:

* :func:`matches` answers whether a calendar day satisfies a rule's
  frequency pattern.
* :func:`iter_occurrences` / :func:`next_occurrences` project future
  occurrence dates of a rule. They never touch storage or the rule's
  ``last_generated_date`` marker.
* :class:`RecurrenceProcessor` materializes due occurrences (as
  transactions, or as pending approvals for rules that require one) and
  applies the user's approve/reject decisions.

All dates are plain ``datetime.date`` values and "today" is always passed in
by the caller.

Monthly rules clamp to the end of short months: a rule for day 31 fires on
the 30th in April and on the 28th or 29th in February. This is the intended
schedule, not an off-by-one.
"""

from __future__ import annotations

import asyncio
import calendar
import itertools
import logging
import uuid
from collections import Counter
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TypeVar

from dateutil.relativedelta import relativedelta

from fintrack.core.exceptions import (
    ApprovalAlreadyDecidedError,
    DuplicateOccurrenceError,
    NotFoundError,
    StorageUnavailableError,
)
from fintrack.database import utcnow
from fintrack.recurring.models import Frequency, PendingApproval, RecurringRule
from fintrack.recurring.store import RecurrenceStore
from fintrack.transactions.models import Transaction, TransactionType

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Frequency matching
# ---------------------------------------------------------------------------


def weekday_index(day: date) -> int:
    """Day of week numbered 0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def clamp_day_of_month(year: int, month: int, day_of_month: int) -> int:
    return min(day_of_month, calendar.monthrange(year, month)[1])


def matches(rule: RecurringRule, day: date) -> bool:
    if rule.frequency == Frequency.DAILY:
        return True
    if rule.frequency == Frequency.WEEKLY:
        return weekday_index(day) == rule.day_of_week
    if rule.frequency == Frequency.MONTHLY:
        if rule.day_of_month is None:
            return False
        return day.day == clamp_day_of_month(day.year, day.month, rule.day_of_month)
    return False


# ---------------------------------------------------------------------------
# Occurrence generation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Occurrence:
    rule_id: uuid.UUID
    date: date
    amount: Decimal
    description: str | None
    type: TransactionType
    category_id: uuid.UUID | None
    requires_approval: bool


def _next_after(rule: RecurringRule, cursor: date) -> date | None:
    """First date strictly after ``cursor`` that matches the rule, or None."""
    if rule.frequency == Frequency.DAILY:
        return cursor + timedelta(days=1)

    if rule.frequency == Frequency.WEEKLY:
        if rule.day_of_week not in range(7):
            return None
        candidate = cursor + timedelta(days=1)
        while weekday_index(candidate) != rule.day_of_week:
            candidate += timedelta(days=1)
        return candidate

    if rule.frequency == Frequency.MONTHLY:
        if rule.day_of_month is None:
            return None
        # relativedelta(day=n) clamps n to the length of the target month.
        candidate = cursor + relativedelta(day=rule.day_of_month)
        if candidate <= cursor:
            candidate = cursor + relativedelta(months=1, day=rule.day_of_month)
        return candidate

    return None


def iter_occurrences(rule: RecurringRule, today: date) -> Iterator[date]:
    """Lazily yield the rule's occurrence dates from ``today`` onwards.

    Starts at ``start_date`` when that lies in the future and stops after
    ``end_date`` when the rule has one. Daily rules without an end date
    yield forever, so callers must bound the iteration.
    """
    cursor = max(today, rule.start_date)
    end = rule.end_date
    if end is not None and cursor > end:
        return

    if matches(rule, cursor):
        yield cursor

    while True:
        candidate = _next_after(rule, cursor)
        if candidate is None or (end is not None and candidate > end):
            return
        yield candidate
        cursor = candidate


def next_occurrences(rule: RecurringRule, count: int, today: date) -> list[date]:
    if count <= 0:
        return []
    return list(itertools.islice(iter_occurrences(rule, today), count))


def upcoming_occurrences(
    rules: Iterable[RecurringRule],
    today: date,
    limit: int = 10,
    per_rule: int = 5,
) -> list[Occurrence]:
    """Merge the next few occurrences of every active rule, soonest first."""
    upcoming = [
        Occurrence(
            rule_id=rule.id,
            date=day,
            amount=rule.amount,
            description=rule.description,
            type=rule.type,
            category_id=rule.category_id,
            requires_approval=rule.requires_approval,
        )
        for rule in rules
        if rule.is_active
        for day in next_occurrences(rule, per_rule, today)
    ]
    upcoming.sort(key=lambda o: o.date)
    return upcoming[:limit]


# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------


def is_due_today(rule: RecurringRule, today: date) -> bool:
    if today < rule.start_date:
        return False
    if rule.last_generated_date == today:
        return False
    if rule.end_date is not None and today > rule.end_date:
        return False
    return matches(rule, today)


@dataclass
class RuleFailure:
    rule_id: uuid.UUID
    error: Exception

    @property
    def message(self) -> str:
        return getattr(self.error, "message", None) or str(self.error) or type(self.error).__name__


@dataclass
class ProcessingReport:
    rules_checked: int = 0
    transactions_created: int = 0
    approvals_created: int = 0
    duplicates_skipped: int = 0
    failures: list[RuleFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def merge(self, other: ProcessingReport) -> None:
        self.rules_checked += other.rules_checked
        self.transactions_created += other.transactions_created
        self.approvals_created += other.approvals_created
        self.duplicates_skipped += other.duplicates_skipped
        self.failures.extend(other.failures)


class _UserLocks:
    """Serializes ticks per user within this process.

    A user's lock is dropped as soon as no tick holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._holders: Counter[uuid.UUID] = Counter()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, user_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._holders[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if not self._holders[user_id]:
                del self._holders[user_id]
                del self._locks[user_id]


_user_locks = _UserLocks()


class RecurrenceProcessor:
    """Materializes due occurrences through an injected :class:`RecurrenceStore`.

    Every storage call is bounded by ``timeout`` seconds, and so is every
    atomic unit including its commit. Running over surfaces as
    :class:`StorageUnavailableError`.
    """

    def __init__(self, store: RecurrenceStore, timeout: float | None = 10.0):
        self.store = store
        self.timeout = timeout

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as exc:
            raise StorageUnavailableError(
                f"Storage call timed out after {self.timeout}s."
            ) from exc

    async def _unit(self, work: Callable[[], Awaitable[T]]) -> T:
        async def run() -> T:
            async with self.store.atomic():
                return await work()

        return await self._call(run())

    async def process_user(self, user_id: uuid.UUID, today: date) -> ProcessingReport:
        async with _user_locks.hold(user_id):
            rules = await self._call(self.store.list_active_rules(user_id))
            return await self.process_due_rules(rules, today)

    async def process_due_rules(
        self, rules: Iterable[RecurringRule], today: date
    ) -> ProcessingReport:
        report = ProcessingReport()

        for rule in rules:
            report.rules_checked += 1
            if not rule.is_active or not is_due_today(rule, today):
                continue

            try:
                if rule.requires_approval:
                    await self._offer_for_approval(rule, today, report)
                else:
                    await self._materialize(rule, today, report)
            except StorageUnavailableError as exc:
                logger.warning(
                    "Storage unavailable for recurring rule %s, will retry next tick: %s",
                    rule.id,
                    exc.message,
                )
                report.failures.append(RuleFailure(rule.id, exc))
            except Exception as exc:
                logger.exception("Failed to process recurring rule %s", rule.id)
                report.failures.append(RuleFailure(rule.id, exc))

        return report

    async def _materialize(
        self, rule: RecurringRule, today: date, report: ProcessingReport
    ) -> None:
        async def book() -> None:
            await self.store.insert_transaction(rule, today)
            await self.store.update_rule_marker(rule.id, today)

        try:
            await self._unit(book)
            report.transactions_created += 1
            logger.info("Generated transaction for recurring rule %s on %s", rule.id, today)
        except DuplicateOccurrenceError:
            await self._unit(lambda: self.store.update_rule_marker(rule.id, today))
            report.duplicates_skipped += 1
            logger.info(
                "Transaction for recurring rule %s on %s already exists", rule.id, today
            )
        rule.last_generated_date = today

    async def _offer_for_approval(
        self, rule: RecurringRule, today: date, report: ProcessingReport
    ) -> None:
        existing = await self._call(self.store.find_approval(rule.id, today))
        if existing is not None:
            return

        try:
            await self._unit(lambda: self.store.insert_pending_approval(rule, today))
        except DuplicateOccurrenceError:
            report.duplicates_skipped += 1
            logger.info("Approval for recurring rule %s on %s already exists", rule.id, today)
            return

        report.approvals_created += 1
        logger.info("Queued approval for recurring rule %s on %s", rule.id, today)

    async def _load_pending(
        self, approval_id: uuid.UUID, user_id: uuid.UUID | None
    ) -> PendingApproval:
        approval = await self._call(self.store.get_approval(approval_id))
        if user_id is not None and approval.user_id != user_id:
            raise NotFoundError("PendingApproval", str(approval_id))
        if not approval.is_pending:
            raise ApprovalAlreadyDecidedError(str(approval_id))
        return approval

    async def approve(
        self,
        approval_id: uuid.UUID,
        now: datetime | None = None,
        user_id: uuid.UUID | None = None,
    ) -> Transaction:
        """Approve a pending occurrence and book its transaction.

        The decision, the transaction (dated at the approval's scheduled date)
        and the rule's marker are written as one unit; on any failure none of
        them persist and the approval stays pending.

        If a transaction for that rule and date already exists, for instance
        because the rule was switched to automatic booking after the approval
        was queued, the approval is settled against the existing transaction.
        """
        now = now or utcnow()
        approval = await self._load_pending(approval_id, user_id)
        rule = await self._call(self.store.get_rule(approval.rule_id))
        on = approval.scheduled_date

        async def book() -> Transaction:
            await self.store.decide_approval(approval.id, True, now)
            transaction = await self.store.insert_transaction(rule, on)
            await self.store.update_rule_marker(rule.id, on)
            return transaction

        async def settle() -> Transaction:
            await self.store.decide_approval(approval.id, True, now)
            await self.store.update_rule_marker(rule.id, on)
            return await self.store.get_transaction(rule.id, on)

        try:
            transaction = await self._unit(book)
        except DuplicateOccurrenceError:
            transaction = await self._unit(settle)
            logger.info(
                "Approved occurrence %s of recurring rule %s for %s, already booked",
                approval.id,
                rule.id,
                on,
            )
            return transaction

        logger.info(
            "Approved occurrence %s of recurring rule %s for %s",
            approval.id,
            rule.id,
            on,
        )
        return transaction

    async def reject(
        self,
        approval_id: uuid.UUID,
        now: datetime | None = None,
        user_id: uuid.UUID | None = None,
    ) -> None:
        # The marker is left alone: rejection skips this occurrence only.
        now = now or utcnow()
        approval = await self._load_pending(approval_id, user_id)

        await self._unit(lambda: self.store.decide_approval(approval.id, False, now))

        logger.info("Rejected occurrence %s of recurring rule %s", approval.id, approval.rule_id)
