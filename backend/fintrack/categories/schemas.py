import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from fintrack.transactions.models import TransactionType


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: TransactionType
    color: str | None = Field(None, max_length=7, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: str | None = Field(None, max_length=50)


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    color: str | None = Field(None, max_length=7, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: str | None = Field(None, max_length=50)


class CategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    type: TransactionType
    color: str | None
    icon: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
