import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.core.pagination import PaginationParams, get_pagination
from fintrack.dependencies import get_current_user, get_db
from fintrack.transactions import service
from fintrack.transactions.models import TransactionType
from fintrack.transactions.schemas import (
    TransactionCreate,
    TransactionFilter,
    TransactionResponse,
    TransactionUpdate,
)

router = APIRouter()


@router.get("")
async def list_transactions(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    pagination: Annotated[PaginationParams, Depends(get_pagination)],
    type: TransactionType | None = Query(None),
    category_id: uuid.UUID | None = Query(None),
    recurring_rule_id: uuid.UUID | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
) -> dict:
    filters = TransactionFilter(
        type=type, category_id=category_id, recurring_rule_id=recurring_rule_id,
        date_from=date_from, date_to=date_to,
    )
    entries, meta = await service.list_transactions(db, current_user, filters, pagination)
    return {"data": [TransactionResponse.model_validate(e) for e in entries], "meta": meta}


@router.get("/summary")
async def transaction_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
) -> dict:
    summary = await service.get_summary(db, current_user, date_from, date_to)
    return {"data": summary.model_dump()}


@router.post("", status_code=201)
async def create_transaction(
    data: TransactionCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    transaction = await service.create_transaction(db, data, current_user)
    return {"data": TransactionResponse.model_validate(transaction)}


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    transaction = await service.get_transaction(db, transaction_id, current_user)
    return {"data": TransactionResponse.model_validate(transaction)}


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_id: uuid.UUID,
    data: TransactionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    transaction = await service.update_transaction(db, transaction_id, data, current_user)
    return {"data": TransactionResponse.model_validate(transaction)}


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    await service.delete_transaction(db, transaction_id, current_user)
    return {"data": {"message": "Transaction deleted"}}
