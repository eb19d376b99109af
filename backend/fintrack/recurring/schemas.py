import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from fintrack.recurring.models import Frequency
from fintrack.transactions.models import TransactionType


def check_rule_fields(
    frequency: Frequency,
    day_of_week: int | None,
    day_of_month: int | None,
    start_date: date,
    end_date: date | None,
) -> str | None:
    """Return a description of the first inconsistency, or None when valid."""
    if frequency == Frequency.WEEKLY:
        if day_of_week is None:
            return "day_of_week is required for weekly rules."
        if not 0 <= day_of_week <= 6:
            return "day_of_week must be between 0 (Sunday) and 6 (Saturday)."
    elif day_of_week is not None:
        return f"day_of_week is only allowed for weekly rules, not {frequency.value}."

    if frequency == Frequency.MONTHLY:
        if day_of_month is None:
            return "day_of_month is required for monthly rules."
        if not 1 <= day_of_month <= 31:
            return "day_of_month must be between 1 and 31."
    elif day_of_month is not None:
        return f"day_of_month is only allowed for monthly rules, not {frequency.value}."

    if end_date is not None and end_date < start_date:
        return "end_date must not be before start_date."
    return None


class RecurringRuleCreate(BaseModel):
    category_id: uuid.UUID | None = None
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str | None = Field(None, max_length=500)
    type: TransactionType
    frequency: Frequency
    day_of_week: int | None = Field(None, ge=0, le=6)
    day_of_month: int | None = Field(None, ge=1, le=31)
    requires_approval: bool = False
    is_active: bool = True
    start_date: date
    end_date: date | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "RecurringRuleCreate":
        problem = check_rule_fields(
            self.frequency, self.day_of_week, self.day_of_month, self.start_date, self.end_date
        )
        if problem:
            raise ValueError(problem)
        return self


class RecurringRuleUpdate(BaseModel):
    category_id: uuid.UUID | None = None
    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    description: str | None = Field(None, max_length=500)
    type: TransactionType | None = None
    frequency: Frequency | None = None
    day_of_week: int | None = Field(None, ge=0, le=6)
    day_of_month: int | None = Field(None, ge=1, le=31)
    requires_approval: bool | None = None
    is_active: bool | None = None
    start_date: date | None = None
    end_date: date | None = None


class RecurringRuleResponse(BaseModel):
    id: uuid.UUID
    category_id: uuid.UUID | None
    amount: float
    description: str | None
    type: TransactionType
    frequency: Frequency
    day_of_week: int | None
    day_of_month: int | None
    requires_approval: bool
    is_active: bool
    start_date: date
    end_date: date | None
    last_generated_date: date | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OccurrenceResponse(BaseModel):
    rule_id: uuid.UUID
    date: date
    amount: float
    description: str | None
    type: TransactionType
    category_id: uuid.UUID | None
    requires_approval: bool

    model_config = {"from_attributes": True}


class PendingApprovalResponse(BaseModel):
    id: uuid.UUID
    rule_id: uuid.UUID
    scheduled_date: date
    is_approved: bool | None
    approved_at: datetime | None
    created_at: datetime
    # Copied from the rule so a client can render the prompt in one request.
    amount: float
    description: str | None
    type: TransactionType
    category_id: uuid.UUID | None


class RuleFailureResponse(BaseModel):
    rule_id: uuid.UUID
    error: str


class ProcessingReportResponse(BaseModel):
    rules_checked: int
    transactions_created: int
    approvals_created: int
    duplicates_skipped: int
    failures: list[RuleFailureResponse]
