import logging
import re
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import SQLModel, Field, Session, select
from pydantic import EmailStr

from ..database import get_session
from ..models.budget import Budget
from ..models.category import Category
from ..models.expense import Expense
from ..models.goal import FinancialGoal, SavingsTransaction
from ..models.recurring import RecurringTransaction
from ..models.split import ExpenseSplit, SplitGroup
from ..models.user import DateFormat, Theme, User
from ..core.security import ACCESS_TOKEN_COOKIE, get_current_user, hash_password, verify_password
from ..core.jwt import create_access_token
from ..config import settings
from ..services.categories import create_default_categories

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class RegisterIn(SQLModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=100)
    first_name: str = Field(default="", max_length=50)
    last_name: str = Field(default="", max_length=50)
    default_currency: str = Field(default="USD", min_length=3, max_length=3)


class UserRead(SQLModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    default_currency: str
    monthly_budget: float
    monthly_goal: float
    email_alerts: bool
    weekly_reports: bool
    monthly_reports: bool
    budget_alerts: bool
    theme: Theme
    date_format: DateFormat
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(SQLModel):
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    default_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    monthly_budget: Optional[float] = Field(default=None, ge=0)
    monthly_goal: Optional[float] = Field(default=None, ge=0)
    email_alerts: Optional[bool] = None
    weekly_reports: Optional[bool] = None
    monthly_reports: Optional[bool] = None
    budget_alerts: Optional[bool] = None
    theme: Optional[Theme] = None
    date_format: Optional[DateFormat] = None


class ChangePasswordIn(SQLModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=100)


class LoginIn(SQLModel):
    email: EmailStr
    password: str


class TokenOut(SQLModel):
    access_token: str
    token_type: str


def _reject_spaces(password: str) -> None:
    if any(c.isspace() for c in password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must not contain whitespace",
        )


def _normalize_currency(value: str) -> str:
    currency = value.strip().upper()
    if not CURRENCY_RE.match(currency):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid default_currency",
        )
    return currency


def _authenticate(session: Session, email: str, password: str) -> User:
    _reject_spaces(password)
    email_norm = email.strip().lower()
    user = session.exec(
        select(User).where(User.email == email_norm, User.deleted_at.is_(None))
    ).first()
    if user is None or not user.is_active or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return user


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
def register_user(
    payload: RegisterIn,
    session: Session = Depends(get_session),
):
    _reject_spaces(payload.password)
    email_norm = payload.email.strip().lower()
    existing = session.exec(select(User).where(User.email == email_norm)).first()
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    now = datetime.utcnow()
    user = User(
        id=uuid.uuid4(),
        email=email_norm,
        hashed_password=hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        default_currency=_normalize_currency(payload.default_currency),
        created_at=now,
        updated_at=now,
        deleted_at=None,
    )
    session.add(user)
    create_default_categories(session, user.id)
    session.commit()
    session.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


@router.post(
    "/login",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
def login(payload: LoginIn, response: Response, session: Session = Depends(get_session)):
    user = _authenticate(session, payload.email, payload.password)

    token = create_access_token({"sub": str(user.id), "email": user.email})

    # HttpOnly cookie keeps the token away from JS. Cross-site deployments
    # need SameSite=None and Secure.
    is_prod = settings.environment.lower() == "production"
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=token,
        httponly=True,
        secure=is_prod,
        samesite="none" if is_prod else "lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )

    user.last_login_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.post(
    "/token",
    response_model=TokenOut,
    status_code=status.HTTP_200_OK,
)
def token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    # OAuth2PasswordRequestForm carries the email in 'username'
    user = _authenticate(session, form_data.username, form_data.password)
    access_token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenOut(access_token=access_token, token_type="bearer")


@router.get(
    "/me",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put(
    "/profile",
    response_model=UserRead,
)
def update_profile(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "default_currency" in data:
        data["default_currency"] = _normalize_currency(data["default_currency"])

    for key, value in data.items():
        setattr(current_user, key, value)
    current_user.updated_at = datetime.utcnow()
    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return current_user


@router.put(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
)
def change_password(
    payload: ChangePasswordIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    _reject_spaces(payload.new_password)

    current_user.hashed_password = hash_password(payload.new_password)
    current_user.updated_at = datetime.utcnow()
    session.add(current_user)
    session.commit()
    return None


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
)
def logout(response: Response):
    response.delete_cookie(key=ACCESS_TOKEN_COOKIE, path="/")
    return None


@router.delete(
    "/data",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_all_user_data(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Remove every row the user owns and restore the stock categories.

    The account itself is kept. Rows are deleted through the session, since
    SQLite does not enforce ON DELETE without the foreign_keys pragma.
    """
    uid = current_user.id
    owned = [
        (ExpenseSplit, ExpenseSplit.payer_id == uid),
        (SplitGroup, SplitGroup.creator_id == uid),
        (SavingsTransaction, SavingsTransaction.user_id == uid),
        (FinancialGoal, FinancialGoal.user_id == uid),
        (Expense, Expense.user_id == uid),
        (RecurringTransaction, RecurringTransaction.user_id == uid),
        (Budget, Budget.user_id == uid),
        (Category, Category.user_id == uid),
    ]
    for model, condition in owned:
        for row in session.exec(select(model).where(condition)).all():
            session.delete(row)
        # flush per table so children are gone before their parents
        session.flush()
    session.commit()

    create_default_categories(session, uid)
    session.commit()
    logger.info("Deleted all data for user %s", uid)
    return None
