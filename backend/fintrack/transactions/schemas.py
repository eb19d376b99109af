import datetime as dt
import uuid
from decimal import Decimal

from pydantic import BaseModel, Field

from fintrack.transactions.models import TransactionType


class TransactionCreate(BaseModel):
    category_id: uuid.UUID | None = None
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str | None = Field(None, max_length=500)
    type: TransactionType
    date: dt.date


class TransactionUpdate(BaseModel):
    category_id: uuid.UUID | None = None
    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    description: str | None = Field(None, max_length=500)
    type: TransactionType | None = None
    date: dt.date | None = None


class TransactionResponse(BaseModel):
    id: uuid.UUID
    category_id: uuid.UUID | None
    amount: float
    description: str | None
    type: TransactionType
    date: dt.date
    recurring_rule_id: uuid.UUID | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class TransactionFilter(BaseModel):
    type: TransactionType | None = None
    category_id: uuid.UUID | None = None
    recurring_rule_id: uuid.UUID | None = None
    date_from: dt.date | None = None
    date_to: dt.date | None = None


class TransactionSummary(BaseModel):
    total_income: float
    total_expenses: float
    balance: float
    transaction_count: int
