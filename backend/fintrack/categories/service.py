from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.categories.models import Category
from fintrack.categories.schemas import CategoryCreate, CategoryUpdate
from fintrack.core.exceptions import ConflictError, NotFoundError, ValidationError
from fintrack.transactions.models import TransactionType


async def _ensure_unique_name(
    db: AsyncSession,
    user: User,
    name: str,
    type_: TransactionType,
    exclude_id: uuid.UUID | None = None,
) -> None:
    q = select(Category).where(
        Category.user_id == user.id,
        Category.name == name,
        Category.type == type_,
    )
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    if (await db.execute(q)).scalar_one_or_none() is not None:
        raise ConflictError(f"A {type_.value} category named '{name}' already exists.")


async def create_category(db: AsyncSession, data: CategoryCreate, user: User) -> Category:
    await _ensure_unique_name(db, user, data.name, data.type)
    category = Category(**data.model_dump(), user_id=user.id)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


async def list_categories(
    db: AsyncSession, user: User, type_: TransactionType | None = None
) -> list[Category]:
    query = select(Category).where(Category.user_id == user.id)
    if type_ is not None:
        query = query.where(Category.type == type_)
    result = await db.execute(query.order_by(Category.type, Category.name))
    return list(result.scalars().all())


async def get_category(db: AsyncSession, category_id: uuid.UUID, user: User) -> Category:
    result = await db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user.id)
    )
    category = result.scalar_one_or_none()
    if category is None:
        raise NotFoundError("Category", str(category_id))
    return category


async def update_category(
    db: AsyncSession, category_id: uuid.UUID, data: CategoryUpdate, user: User
) -> Category:
    category = await get_category(db, category_id, user)
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("name"):
        await _ensure_unique_name(db, user, update_data["name"], category.type, category.id)
    for key, value in update_data.items():
        setattr(category, key, value)
    await db.commit()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, category_id: uuid.UUID, user: User) -> None:
    category = await get_category(db, category_id, user)
    await db.delete(category)
    await db.commit()


async def check_category_type(
    db: AsyncSession, category_id: uuid.UUID | None, type_: TransactionType, user: User
) -> None:
    """Ensure an optional category belongs to the user and matches the entry type."""
    if category_id is None:
        return
    category = await get_category(db, category_id, user)
    if category.type != type_:
        raise ValidationError(
            f"Category '{category.name}' is for {category.type.value} entries, not {type_.value}."
        )
