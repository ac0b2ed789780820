import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from showcase.config import Settings, get_settings
from showcase.dependencies import get_current_user, is_admin
from showcase.models import User, get_db

router = APIRouter()
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(CamelModel):
    display_name: str = Field(alias="displayName", min_length=1, max_length=255)
    email: EmailStr
    password: str
    confirm_password: str = Field(alias="confirmPassword")
    phone: str | None = Field(default=None, max_length=50)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v

    @model_validator(mode="after")
    def validate_registration(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"email": "user@example.com", "password": "securepassword"}]},
        populate_by_name=True,
    )


class TokenResponse(CamelModel):
    access_token: str = Field(alias="accessToken")
    token_type: str = "bearer"
    expires_in: int = Field(alias="expiresIn")


class PayoutSettingsRequest(CamelModel):
    payout_automation_enabled: bool = Field(alias="payoutAutomationEnabled")
    payout_destination_account_id: str | None = Field(
        default=None, alias="payoutDestinationAccountId", max_length=255
    )

    @model_validator(mode="after")
    def validate_destination(self) -> "PayoutSettingsRequest":
        if self.payout_destination_account_id is not None:
            self.payout_destination_account_id = self.payout_destination_account_id.strip() or None
        if self.payout_automation_enabled and not self.payout_destination_account_id:
            raise ValueError("A payout destination account is required to enable automatic payouts")
        return self


class MeResponse(CamelModel):
    id: int
    email: str
    display_name: str | None = Field(default=None, alias="displayName")
    phone: str | None = None
    payout_automation_enabled: bool = Field(alias="payoutAutomationEnabled")
    payout_destination_account_id: str | None = Field(default=None, alias="payoutDestinationAccountId")
    is_admin: bool = Field(alias="isAdmin")
    created_at: str = Field(alias="createdAt")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user_id: int, config: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=config.JWT_EXPIRE_MINUTES)
    to_encode = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def _me_response(user: User, config: Settings) -> MeResponse:
    return MeResponse(
        id=user.id,
        email=user.email,
        displayName=user.display_name,
        phone=user.phone,
        payoutAutomationEnabled=user.payout_automation_enabled,
        payoutDestinationAccountId=user.payout_destination_account_id,
        isAdmin=is_admin(user, config),
        createdAt=user.created_at.isoformat() if user.created_at else "",
    )


@router.post(
    "/register",
    response_model=MeResponse,
    summary="Register a new user",
)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """Register a buyer account. Selling requires payout settings to be configured afterwards."""
    email = body.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = User(
        display_name=body.display_name,
        email=email,
        phone=body.phone,
        hashed_password=get_password_hash(body.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user id=%s", user.id)
    return _me_response(user, config)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and get an access token",
)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """Login with email/password and return a JWT access token."""
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    return TokenResponse(
        accessToken=create_access_token(user.id, config),
        expiresIn=config.JWT_EXPIRE_MINUTES * 60,
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current authenticated user profile",
)
def me(
    current_user: Annotated[User, Depends(get_current_user)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """Return profile of the authenticated user."""
    return _me_response(current_user, config)


@router.put(
    "/me/payout-settings",
    response_model=MeResponse,
    summary="Update seller payout settings",
)
def update_payout_settings(
    body: PayoutSettingsRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[Settings, Depends(get_settings)],
):
    """Both automatic payouts and a destination account are needed before buyers can order this seller's products."""
    current_user.payout_automation_enabled = body.payout_automation_enabled
    current_user.payout_destination_account_id = body.payout_destination_account_id
    db.commit()
    db.refresh(current_user)
    logger.info(
        "User %s payout settings updated: enabled=%s",
        current_user.id,
        current_user.payout_automation_enabled,
    )
    return _me_response(current_user, config)
