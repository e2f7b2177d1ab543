from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.core.security import create_access_token
from studygroup.database import get_db
from studygroup.deps.auth import get_current_user
from studygroup.models import User
from studygroup.schemas import (
    ForgotPasswordRequest,
    MessageOut,
    ResetPasswordRequest,
    Token,
    UpdatePasswordRequest,
    UserCreate,
    UserLogin,
    UserOut,
)
from studygroup.services.mail import Mailer, get_mailer
from studygroup.services.users import UserService

router = APIRouter()


def _token_for(user: User) -> Token:
    token = create_access_token(subject=str(user.id))
    return Token(access_token=token, user=UserOut.model_validate(user))


@router.post("/register", response_model=Token, status_code=201)
async def register(user: UserCreate, db: AsyncSession = Depends(get_db)):
    new_user = await UserService(db).register(user.name, user.email, user.password)
    return _token_for(new_user)


@router.post("/login", response_model=Token)
async def login_user(user: UserLogin, db: AsyncSession = Depends(get_db)):
    existing_user = await UserService(db).authenticate(user.email, user.password)
    return _token_for(existing_user)


@router.get("/me", response_model=UserOut)
async def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/update-password", response_model=MessageOut)
async def update_password(
    body: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await UserService(db).update_password(current_user.id, body.current_password, body.new_password)
    return {"message": "Password updated successfully"}


@router.post("/forgot-password", response_model=MessageOut)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    await UserService(db).initiate_password_reset(body.email, mailer)
    return {"message": "Password reset link sent to your email"}


@router.post("/reset-password", response_model=MessageOut)
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await UserService(db).reset_password(body.token, body.new_password)
    return {"message": "Password reset successfully"}
