from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.config import Settings
from fintrack.core.pagination import PaginationParams, get_pagination
from fintrack.dependencies import get_current_user, get_db, get_settings, get_today
from fintrack.recurring import service
from fintrack.recurring.engine import ProcessingReport
from fintrack.recurring.schemas import (
    OccurrenceResponse,
    ProcessingReportResponse,
    RecurringRuleCreate,
    RecurringRuleResponse,
    RecurringRuleUpdate,
    RuleFailureResponse,
)
from fintrack.transactions.schemas import TransactionResponse

router = APIRouter()


def _report_response(report: ProcessingReport) -> ProcessingReportResponse:
    return ProcessingReportResponse(
        rules_checked=report.rules_checked,
        transactions_created=report.transactions_created,
        approvals_created=report.approvals_created,
        duplicates_skipped=report.duplicates_skipped,
        failures=[
            RuleFailureResponse(rule_id=f.rule_id, error=f.message) for f in report.failures
        ],
    )


@router.get("")
async def list_rules(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    pagination: Annotated[PaginationParams, Depends(get_pagination)],
    is_active: bool | None = Query(None),
) -> dict:
    rules, meta = await service.list_rules(db, current_user, pagination, is_active)
    return {
        "data": [RecurringRuleResponse.model_validate(r) for r in rules],
        "meta": meta,
    }


@router.post("", status_code=201)
async def create_rule(
    data: RecurringRuleCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    rule = await service.create_rule(db, data, current_user)
    return {"data": RecurringRuleResponse.model_validate(rule)}


@router.get("/upcoming")
async def upcoming_occurrences(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    today: Annotated[date, Depends(get_today)],
    limit: int = Query(10, ge=1, le=100),
) -> dict:
    occurrences = await service.get_upcoming(
        db, current_user, today, limit=limit, per_rule=settings.upcoming_per_rule
    )
    return {"data": [OccurrenceResponse.model_validate(o) for o in occurrences]}


@router.post("/process")
async def process_rules(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    today: Annotated[date, Depends(get_today)],
) -> dict:
    report = await service.process_for_user(db, current_user, today, settings)
    return {"data": _report_response(report)}


@router.get("/approvals")
async def list_approvals(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    include_decided: bool = Query(False),
) -> dict:
    approvals = await service.list_pending_approvals(db, current_user, include_decided)
    return {"data": approvals}


@router.post("/approvals/{approval_id}/approve")
async def approve_occurrence(
    approval_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict:
    transaction = await service.approve_pending(db, approval_id, current_user, settings)
    return {"data": TransactionResponse.model_validate(transaction)}


@router.post("/approvals/{approval_id}/reject")
async def reject_occurrence(
    approval_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict:
    await service.reject_pending(db, approval_id, current_user, settings)
    return {"data": {"message": "Occurrence rejected"}}


@router.get("/{rule_id}")
async def get_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    rule = await service.get_rule(db, rule_id, current_user)
    return {"data": RecurringRuleResponse.model_validate(rule)}


@router.put("/{rule_id}")
async def update_rule(
    rule_id: uuid.UUID,
    data: RecurringRuleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    rule = await service.update_rule(db, rule_id, data, current_user)
    return {"data": RecurringRuleResponse.model_validate(rule)}


@router.delete("/{rule_id}")
async def delete_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    await service.delete_rule(db, rule_id, current_user)
    return {"data": {"message": "Recurring rule deleted"}}


@router.post("/{rule_id}/toggle")
async def toggle_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    rule = await service.toggle_rule(db, rule_id, current_user)
    return {"data": RecurringRuleResponse.model_validate(rule)}


@router.get("/{rule_id}/occurrences")
async def rule_occurrences(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    today: Annotated[date, Depends(get_today)],
    count: int = Query(5, ge=0, le=366),
) -> dict:
    dates = await service.get_occurrences(db, rule_id, current_user, count, today)
    return {"data": {"rule_id": rule_id, "dates": dates}}
