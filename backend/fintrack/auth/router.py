from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.auth.models import User
from fintrack.auth.schemas import UserCreate, UserLogin, UserResponse
from fintrack.auth.service import authenticate_user, register_user
from fintrack.dependencies import get_current_user, get_db

router = APIRouter()


@router.post("/register", status_code=201)
async def register(
    user_data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    user = await register_user(db, user_data)
    return {"data": UserResponse.model_validate(user)}


@router.post("/login")
async def login(
    credentials: UserLogin,
    db: Annotated[AsyncSession, Depends(get_db)],
    request: Request,
) -> dict:
    tokens = await authenticate_user(
        db, credentials.email, credentials.password, request.app.state.settings
    )
    return {"data": tokens}


@router.get("/me")
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    return {"data": UserResponse.model_validate(current_user)}
