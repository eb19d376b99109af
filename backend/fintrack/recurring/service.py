from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fintrack.auth.models import User
from fintrack.categories.service import check_category_type
from fintrack.config import Settings
from fintrack.core.exceptions import NotFoundError, ValidationError
from fintrack.core.pagination import PaginationParams, paginate
from fintrack.recurring.engine import (
    Occurrence,
    ProcessingReport,
    RecurrenceProcessor,
    next_occurrences,
    upcoming_occurrences,
)
from fintrack.recurring.models import PendingApproval, RecurringRule
from fintrack.recurring.schemas import (
    PendingApprovalResponse,
    RecurringRuleCreate,
    RecurringRuleUpdate,
    check_rule_fields,
)
from fintrack.recurring.store import SQLAlchemyRecurrenceStore
from fintrack.transactions.models import Transaction

logger = logging.getLogger(__name__)


def _processor(db: AsyncSession, settings: Settings) -> RecurrenceProcessor:
    return RecurrenceProcessor(
        SQLAlchemyRecurrenceStore(db), timeout=settings.storage_timeout_seconds
    )


async def create_rule(
    db: AsyncSession, data: RecurringRuleCreate, user: User
) -> RecurringRule:
    await check_category_type(db, data.category_id, data.type, user)
    rule = RecurringRule(**data.model_dump(), user_id=user.id)
    db.add(rule)
    await db.commit()
    await db.refresh(rule)
    logger.info("Created %s recurring rule %s for user %s", rule.frequency.value, rule.id, user.id)
    return rule


async def list_rules(
    db: AsyncSession,
    user: User,
    pagination: PaginationParams,
    is_active: bool | None = None,
) -> tuple[list[RecurringRule], dict]:
    query = select(RecurringRule).where(RecurringRule.user_id == user.id)
    if is_active is not None:
        query = query.where(RecurringRule.is_active == is_active)
    query = query.order_by(RecurringRule.start_date, RecurringRule.created_at)
    return await paginate(db, query, pagination)


async def get_rule(db: AsyncSession, rule_id: uuid.UUID, user: User) -> RecurringRule:
    result = await db.execute(
        select(RecurringRule).where(
            RecurringRule.id == rule_id, RecurringRule.user_id == user.id
        )
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFoundError("RecurringRule", str(rule_id))
    return rule


async def update_rule(
    db: AsyncSession, rule_id: uuid.UUID, data: RecurringRuleUpdate, user: User
) -> RecurringRule:
    rule = await get_rule(db, rule_id, user)
    update_data = data.model_dump(exclude_unset=True)

    for field in ("amount", "type", "frequency", "start_date", "requires_approval", "is_active"):
        if field in update_data and update_data[field] is None:
            raise ValidationError(f"{field} cannot be null.")

    # A partial update must still leave a consistent rule behind.
    merged = {
        field: update_data.get(field, getattr(rule, field))
        for field in ("frequency", "day_of_week", "day_of_month", "start_date", "end_date")
    }
    problem = check_rule_fields(**merged)
    if problem:
        raise ValidationError(problem)

    await check_category_type(
        db,
        update_data.get("category_id", rule.category_id),
        update_data.get("type") or rule.type,
        user,
    )

    for key, value in update_data.items():
        setattr(rule, key, value)
    await db.commit()
    await db.refresh(rule)
    return rule


async def delete_rule(db: AsyncSession, rule_id: uuid.UUID, user: User) -> None:
    """Delete a rule; its generated transactions stay, detached from the rule."""
    rule = await get_rule(db, rule_id, user)
    await db.delete(rule)
    await db.commit()
    logger.info("Deleted recurring rule %s", rule_id)


async def toggle_rule(db: AsyncSession, rule_id: uuid.UUID, user: User) -> RecurringRule:
    rule = await get_rule(db, rule_id, user)
    rule.is_active = not rule.is_active
    await db.commit()
    await db.refresh(rule)
    return rule


async def get_occurrences(
    db: AsyncSession, rule_id: uuid.UUID, user: User, count: int, today: date
) -> list[date]:
    rule = await get_rule(db, rule_id, user)
    return next_occurrences(rule, count, today)


async def get_upcoming(
    db: AsyncSession, user: User, today: date, limit: int = 10, per_rule: int = 5
) -> list[Occurrence]:
    result = await db.execute(
        select(RecurringRule).where(
            RecurringRule.user_id == user.id,
            RecurringRule.is_active == True,  # noqa: E712
        )
    )
    return upcoming_occurrences(result.scalars().all(), today, limit=limit, per_rule=per_rule)


# ---------------------------------------------------------------------------
# Processing and approvals
# ---------------------------------------------------------------------------


async def process_for_user(
    db: AsyncSession, user: User, today: date, settings: Settings
) -> ProcessingReport:
    # A rolled-back rule expires session state, so hold on to the plain id.
    user_id = user.id
    report = await _processor(db, settings).process_user(user_id, today)
    logger.info(
        "Processed recurring rules for user %s: %d created, %d queued, %d failed",
        user_id,
        report.transactions_created,
        report.approvals_created,
        len(report.failures),
    )
    return report


async def process_all_users(
    session_factory: async_sessionmaker[AsyncSession], today: date, settings: Settings
) -> ProcessingReport:
    """Run one processing tick for every user that has active rules."""
    async with session_factory() as db:
        result = await db.execute(
            select(RecurringRule.user_id)
            .where(RecurringRule.is_active == True)  # noqa: E712
            .distinct()
        )
        user_ids = list(result.scalars().all())

    total = ProcessingReport()
    for user_id in user_ids:
        async with session_factory() as db:
            total.merge(await _processor(db, settings).process_user(user_id, today))
    return total


async def list_pending_approvals(
    db: AsyncSession, user: User, include_decided: bool = False
) -> list[PendingApprovalResponse]:
    query = (
        select(PendingApproval, RecurringRule)
        .join(RecurringRule, RecurringRule.id == PendingApproval.rule_id)
        .where(PendingApproval.user_id == user.id)
    )
    if not include_decided:
        query = query.where(PendingApproval.is_approved.is_(None))
    query = query.order_by(PendingApproval.scheduled_date, PendingApproval.created_at)

    rows = (await db.execute(query)).all()
    return [
        PendingApprovalResponse(
            id=approval.id,
            rule_id=approval.rule_id,
            scheduled_date=approval.scheduled_date,
            is_approved=approval.is_approved,
            approved_at=approval.approved_at,
            created_at=approval.created_at,
            amount=float(rule.amount),
            description=rule.description,
            type=rule.type,
            category_id=rule.category_id,
        )
        for approval, rule in rows
    ]


async def approve_pending(
    db: AsyncSession, approval_id: uuid.UUID, user: User, settings: Settings
) -> Transaction:
    transaction = await _processor(db, settings).approve(approval_id, user_id=user.id)
    await db.refresh(transaction)
    return transaction


async def reject_pending(
    db: AsyncSession, approval_id: uuid.UUID, user: User, settings: Settings
) -> None:
    await _processor(db, settings).reject(approval_id, user_id=user.id)
