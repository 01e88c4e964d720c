from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class VerifyOTP(BaseModel):
    otp: Optional[str] = None

    @field_validator("otp", mode="before")
    @classmethod
    def otp_to_str(cls, value):
        # clients send the code either as "1234" or 1234
        if value is None or isinstance(value, str):
            return value
        return str(value)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordCheck(BaseModel):
    password: Optional[str] = None


class EmailUpdateRequest(BaseModel):
    email: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPassword(BaseModel):
    password: Optional[str] = None
    conform_password: Optional[str] = Field(default=None, alias="conformPassword")

    model_config = ConfigDict(populate_by_name=True)


class UserUpdate(BaseModel):
    """Editable profile fields. Email has its own OTP-confirmed flow."""
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    image: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class User(BaseModel):
    id: str
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    bio: Optional[str] = None
    image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
    message: str


class Confirmation(BaseModel):
    success: bool
    message: str


class AuthResult(BaseModel):
    token: str
    user: User


class LoginResult(AuthResult):
    message: str


class ResetResult(BaseModel):
    token: str
    updated_user: User = Field(alias="updatedUser")

    model_config = ConfigDict(populate_by_name=True)


class AuthStatus(BaseModel):
    authenticated: bool
    user: Optional[User] = None
    message: Optional[str] = None
