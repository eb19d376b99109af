from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.categories.service import check_category_type
from fintrack.core.exceptions import NotFoundError
from fintrack.core.pagination import PaginationParams, paginate
from fintrack.transactions.models import Transaction, TransactionType
from fintrack.transactions.schemas import (
    TransactionCreate,
    TransactionFilter,
    TransactionSummary,
    TransactionUpdate,
)


async def create_transaction(
    db: AsyncSession, data: TransactionCreate, user: User
) -> Transaction:
    await check_category_type(db, data.category_id, data.type, user)
    transaction = Transaction(**data.model_dump(), user_id=user.id)
    db.add(transaction)
    await db.commit()
    await db.refresh(transaction)
    return transaction


async def list_transactions(
    db: AsyncSession, user: User, filters: TransactionFilter, pagination: PaginationParams
) -> tuple[list[Transaction], dict]:
    query = select(Transaction).where(Transaction.user_id == user.id)

    if filters.type is not None:
        query = query.where(Transaction.type == filters.type)
    if filters.category_id is not None:
        query = query.where(Transaction.category_id == filters.category_id)
    if filters.recurring_rule_id is not None:
        query = query.where(Transaction.recurring_rule_id == filters.recurring_rule_id)
    if filters.date_from is not None:
        query = query.where(Transaction.date >= filters.date_from)
    if filters.date_to is not None:
        query = query.where(Transaction.date <= filters.date_to)

    query = query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
    return await paginate(db, query, pagination)


async def get_transaction(
    db: AsyncSession, transaction_id: uuid.UUID, user: User
) -> Transaction:
    result = await db.execute(
        select(Transaction).where(
            Transaction.id == transaction_id, Transaction.user_id == user.id
        )
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFoundError("Transaction", str(transaction_id))
    return transaction


async def update_transaction(
    db: AsyncSession, transaction_id: uuid.UUID, data: TransactionUpdate, user: User
) -> Transaction:
    transaction = await get_transaction(db, transaction_id, user)
    update_data = data.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(transaction, key, value)
    await check_category_type(db, transaction.category_id, transaction.type, user)
    await db.commit()
    await db.refresh(transaction)
    return transaction


async def delete_transaction(db: AsyncSession, transaction_id: uuid.UUID, user: User) -> None:
    transaction = await get_transaction(db, transaction_id, user)
    await db.delete(transaction)
    await db.commit()


async def get_summary(
    db: AsyncSession,
    user: User,
    date_from: date | None = None,
    date_to: date | None = None,
) -> TransactionSummary:
    query = (
        select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0), func.count())
        .where(Transaction.user_id == user.id)
        .group_by(Transaction.type)
    )
    if date_from:
        query = query.where(Transaction.date >= date_from)
    if date_to:
        query = query.where(Transaction.date <= date_to)

    totals = {TransactionType.INCOME: Decimal("0"), TransactionType.EXPENSE: Decimal("0")}
    count = 0
    for type_, total, n in (await db.execute(query)).all():
        totals[type_] = Decimal(str(total))
        count += n

    income = totals[TransactionType.INCOME]
    expenses = totals[TransactionType.EXPENSE]
    return TransactionSummary(
        total_income=float(income),
        total_expenses=float(expenses),
        balance=float(income - expenses),
        transaction_count=count,
    )
