from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.categories import service
from fintrack.categories.schemas import CategoryCreate, CategoryResponse, CategoryUpdate
from fintrack.dependencies import get_current_user, get_db
from fintrack.transactions.models import TransactionType

router = APIRouter()


@router.get("")
async def list_categories(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    type: TransactionType | None = Query(None),
) -> dict:
    categories = await service.list_categories(db, current_user, type)
    return {"data": [CategoryResponse.model_validate(c) for c in categories]}


@router.post("", status_code=201)
async def create_category(
    data: CategoryCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    category = await service.create_category(db, data, current_user)
    return {"data": CategoryResponse.model_validate(category)}


@router.get("/{category_id}")
async def get_category(
    category_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    category = await service.get_category(db, category_id, current_user)
    return {"data": CategoryResponse.model_validate(category)}


@router.put("/{category_id}")
async def update_category(
    category_id: uuid.UUID,
    data: CategoryUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    category = await service.update_category(db, category_id, data, current_user)
    return {"data": CategoryResponse.model_validate(category)}


@router.delete("/{category_id}")
async def delete_category(
    category_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    await service.delete_category(db, category_id, current_user)
    return {"data": {"message": "Category deleted"}}
