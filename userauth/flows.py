"""
OTP-confirmed account flows kept in the server-side session.

Three independent lanes each own one session key:

* ``registration``   - Idle -> pending_otp -> (user created) -> Idle
* ``email_change``   - Idle -> pending_otp -> (email updated) -> Idle
* ``password_reset`` - Idle -> otp_sent -> otp_confirmed -> (password reset) -> Idle

A missing key is the Idle state. The session only ever holds a keyed digest
of the code, never the code itself. The email change lane belongs to the user
who opened it. A wrong code leaves the lane untouched so
the client can retry; terminal success removes the lane key.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Literal, MutableMapping, Optional, Tuple, Type, TypeVar

import pydantic
from email_validator import EmailNotValidError, validate_email
from fastapi import BackgroundTasks
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import crud, models
from .core.security import create_user_token, get_password_hash, hash_otp, otp_matches
from .errors import (
    DuplicateEmail,
    IncompleteRegistration,
    InvalidEmail,
    MissingFields,
    NoPendingEmail,
    NoPendingRegistration,
    OtpMismatch,
    OtpNotValidated,
    OtpRequired,
    PasswordMismatch,
    SameEmail,
    UserNotFound,
    WeakInput,
)
from .utils import Notifier, generate_otp, notify_best_effort, notify_required

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
EMAIL_CHANGE = "email_change"
PASSWORD_RESET = "password_reset"

MIN_PASSWORD_LENGTH = 6
# bcrypt rejects longer input
MAX_PASSWORD_BYTES = 72

SessionData = MutableMapping[str, object]
State = TypeVar("State", bound=BaseModel)


# ── Lane states ───────────────────────────────────────────────────────────────


class PendingUser(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""
    role: str = "user"

    def is_complete(self) -> bool:
        return bool(self.name and self.email and self.password)


class PendingRegistration(BaseModel):
    state: Literal["pending_otp"] = "pending_otp"
    otp: str
    user: PendingUser


class PendingEmailChange(BaseModel):
    state: Literal["pending_otp"] = "pending_otp"
    otp: str
    user_id: str = ""
    email: Optional[str] = None


class PasswordReset(BaseModel):
    state: Literal["otp_sent", "otp_confirmed"] = "otp_sent"
    otp: str
    email: str


def load_state(session: SessionData, key: str, model: Type[State]) -> Optional[State]:
    raw = session.get(key)
    if raw is None:
        return None
    try:
        return model.model_validate(raw)
    except pydantic.ValidationError:
        logger.warning("Discarding unreadable %s session state", key)
        session.pop(key, None)
        return None


def store_state(session: SessionData, key: str, state: BaseModel) -> None:
    session[key] = state.model_dump()


def clear_state(session: SessionData, key: str) -> None:
    session.pop(key, None)


# ── Input checks ──────────────────────────────────────────────────────────────


def normalize_name(name: str) -> str:
    return " ".join(name.split())


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def check_password_length(password: str) -> None:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise WeakInput(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")


def check_registration_input(name: str, email: str, password: str) -> None:
    if not is_valid_email(email):
        raise InvalidEmail()
    if email == name:
        raise WeakInput("Email cannot be the same as your name")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise WeakInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    check_password_length(password)
    if password == name or password == email:
        raise WeakInput("Password cannot be the same as your name or email")


# ── Lane A: registration ──────────────────────────────────────────────────────


async def register(
    session: SessionData,
    db: Session,
    background_tasks: BackgroundTasks,
    sender: Notifier,
    name: Optional[str],
    email: Optional[str],
    password: Optional[str],
    role: Optional[str],
) -> None:
    if not (name and email and password and role):
        raise MissingFields()

    name = normalize_name(name)
    if not name:
        raise MissingFields()
    check_registration_input(name, email, password)

    existing, password_hash = await asyncio.gather(
        run_in_threadpool(crud.get_user_by_email, db, email),
        run_in_threadpool(get_password_hash, password),
    )
    otp = generate_otp()
    if existing:
        raise DuplicateEmail()

    pending = PendingRegistration(
        otp=hash_otp(otp),
        user=PendingUser(name=name, email=email, password=password_hash, role=role),
    )
    store_state(session, REGISTRATION, pending)
    notify_best_effort(background_tasks, sender, "registration", name, email, otp)
    logger.info("Registration pending for %s", email)


async def resend_otp(session: SessionData, background_tasks: BackgroundTasks, sender: Notifier) -> None:
    pending = load_state(session, REGISTRATION, PendingRegistration)
    if pending is None or not (pending.user.email and pending.user.name):
        raise NoPendingRegistration()

    otp = generate_otp()
    pending.otp = hash_otp(otp)
    store_state(session, REGISTRATION, pending)
    notify_best_effort(background_tasks, sender, "resend", pending.user.name, pending.user.email, otp)


async def verify_otp(session: SessionData, db: Session, otp: Optional[str]) -> Tuple[models.User, str]:
    pending = load_state(session, REGISTRATION, PendingRegistration)
    if pending is None or not pending.user.is_complete():
        raise IncompleteRegistration()
    if not otp_matches(otp, pending.otp):
        raise OtpMismatch()

    fields = pending.user.model_dump()
    fields["id"] = str(uuid.uuid4())
    user, token = await asyncio.gather(
        run_in_threadpool(crud.create_user, db, fields),
        run_in_threadpool(create_user_token, fields["id"], fields["email"]),
    )
    clear_state(session, REGISTRATION)
    return user, token


# ── Lane B: email change ──────────────────────────────────────────────────────


async def request_email_change(
    session: SessionData,
    db: Session,
    sender: Notifier,
    user: models.User,
    new_email: Optional[str],
) -> None:
    if not new_email:
        raise MissingFields()
    if new_email == user.email:
        raise SameEmail()
    if await run_in_threadpool(crud.get_user_by_email, db, new_email):
        raise DuplicateEmail("This email already exists with another account")
    if not is_valid_email(new_email):
        raise InvalidEmail()

    otp = generate_otp()
    await notify_required(sender, "email_update", user.name, new_email, otp)
    store_state(session, EMAIL_CHANGE, PendingEmailChange(otp=hash_otp(otp), user_id=user.id, email=new_email))


async def confirm_email_change(
    session: SessionData,
    db: Session,
    user: models.User,
    otp: Optional[str],
) -> models.User:
    pending = load_state(session, EMAIL_CHANGE, PendingEmailChange)
    if pending is not None and pending.user_id != user.id:
        pending = None
    if not otp_matches(otp, pending.otp if pending else None):
        raise OtpMismatch()
    if not pending.email:
        raise NoPendingEmail()

    updated = await run_in_threadpool(crud.update_user, db, user.id, {"email": pending.email})
    if updated is None:
        raise UserNotFound()
    clear_state(session, EMAIL_CHANGE)
    logger.info("User %s changed email", updated.id)
    return updated


# ── Lane C: forgot / reset password ───────────────────────────────────────────


async def request_reset(session: SessionData, db: Session, sender: Notifier, email: Optional[str]) -> None:
    user = await run_in_threadpool(crud.get_user_by_email, db, email) if email else None
    if user is None:
        raise UserNotFound()

    otp = generate_otp()
    await notify_required(sender, "forgot_password", user.name, user.email, otp)
    store_state(session, PASSWORD_RESET, PasswordReset(otp=hash_otp(otp), email=user.email))


def confirm_reset_otp(session: SessionData, otp: Optional[str]) -> None:
    if not otp:
        raise OtpRequired()
    pending = load_state(session, PASSWORD_RESET, PasswordReset)
    if pending is None or not otp_matches(otp, pending.otp):
        raise OtpMismatch()

    pending.state = "otp_confirmed"
    store_state(session, PASSWORD_RESET, pending)


async def reset_password(
    session: SessionData,
    db: Session,
    password: Optional[str],
    confirm_password: Optional[str],
) -> Tuple[models.User, str]:
    pending = load_state(session, PASSWORD_RESET, PasswordReset)
    if pending is None or pending.state != "otp_confirmed":
        raise OtpNotValidated()

    user = await run_in_threadpool(crud.get_user_by_email, db, pending.email)
    if user is None:
        raise UserNotFound()
    if not password or not confirm_password:
        raise MissingFields()
    if password != confirm_password:
        raise PasswordMismatch()
    check_password_length(password)

    password_hash = await run_in_threadpool(get_password_hash, password)
    updated = await run_in_threadpool(crud.update_user, db, user.id, {"password": password_hash})
    if updated is None:
        raise UserNotFound()
    token = create_user_token(updated.id, updated.email)
    clear_state(session, PASSWORD_RESET)
    logger.info("User %s reset password", updated.id)
    return updated, token
