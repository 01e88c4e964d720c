from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import crud, flows, schemas
from ..core import security
from ..core.config import settings
from ..core.dependencies import TOKEN_COOKIE, get_current_user_id
from ..database import get_db
from ..session_store import ServerSession, get_server_session
from ..errors import AuthError, MissingFields, PasswordMismatch, ProfileNotFound, UserNotFound
from ..utils import Notifier, get_notifier

router = APIRouter()


def set_auth_cookie(response: Response, access_token: str):
    response.set_cookie(
        key=TOKEN_COOKIE,
        value=access_token,
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        expires=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
        samesite="lax",
        secure=settings.COOKIE_SECURE
    )


async def _load_user(db: Session, user_id: str):
    user = await run_in_threadpool(crud.get_user_by_id, db, user_id)
    if user is None:
        raise UserNotFound()
    return user


@router.get("/", response_model=List[schemas.User])
def list_users(db: Session = Depends(get_db)):
    return crud.get_users(db)


@router.get("/check", response_model=schemas.AuthStatus, response_model_exclude_none=True)
async def check_auth_status(request: Request, db: Session = Depends(get_db)):
    """Report whether the `token` cookie belongs to a live user. Never rejects."""
    token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"authenticated": False})

    try:
        payload = security.decode_access_token(token.replace("Bearer ", "", 1))
    except AuthError as e:
        return JSONResponse(status_code=e.status_code, content={"message": e.message, "authenticated": False})

    user = await run_in_threadpool(crud.get_user_by_id, db, payload["sub"])
    if user is None:
        return JSONResponse(
            status_code=ProfileNotFound.status_code,
            content={"message": ProfileNotFound.message, "authenticated": False},
        )

    return {"authenticated": True, "user": user}


# ── Registration ──────────────────────────────────────────────────────────────

@router.post("/register", response_model=schemas.Message)
async def register_user(
        user_in: schemas.RegisterRequest,
        background_tasks: BackgroundTasks,
        session: ServerSession = Depends(get_server_session),
        db: Session = Depends(get_db),
        sender: Notifier = Depends(get_notifier)
):
    await flows.register(
        session, db, background_tasks, sender,
        name=user_in.name, email=user_in.email, password=user_in.password, role=user_in.role,
    )
    return {"message": "OTP sent successfully"}


@router.post("/verify-otp", response_model=schemas.AuthResult)
async def verify_user_otp(
        response: Response,
        data: schemas.VerifyOTP,
        session: ServerSession = Depends(get_server_session),
        db: Session = Depends(get_db)
):
    user, token = await flows.verify_otp(session, db, data.otp)
    set_auth_cookie(response, token)
    return {"token": token, "user": user}


@router.post("/resendotp", response_model=schemas.Message)
async def resend_otp(
        background_tasks: BackgroundTasks,
        session: ServerSession = Depends(get_server_session),
        sender: Notifier = Depends(get_notifier)
):
    await flows.resend_otp(session, background_tasks, sender)
    return {"message": "OTP resent successfully"}


# ── Login / logout ────────────────────────────────────────────────────────────

@router.post("/login", response_model=schemas.LoginResult)
async def login(response: Response, credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    if not credentials.email or not credentials.password:
        raise MissingFields()

    user = await run_in_threadpool(crud.authenticate_user, db, credentials.email, credentials.password)
    token = security.create_user_token(user.id, user.email)
    set_auth_cookie(response, token)
    return {"message": "Login successful", "user": user, "token": token}


@router.post("/logout", response_model=schemas.Message)
def logout(response: Response):
    response.delete_cookie(key=TOKEN_COOKIE, path="/")
    return {"message": "Logged out successfully"}


# ── Profile ───────────────────────────────────────────────────────────────────

@router.patch("/update-profile", response_model=schemas.User)
async def edit_user_profile(
        changes: schemas.UserUpdate,
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db)
):
    patch = changes.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in patch:
        patch["name"] = flows.normalize_name(patch["name"])
        if not patch["name"]:
            raise MissingFields("Name cannot be empty")
    if "password" in patch:
        flows.check_password_length(patch["password"])
        patch["password"] = await run_in_threadpool(security.get_password_hash, patch["password"])

    user = await run_in_threadpool(crud.update_user, db, user_id, patch)
    if user is None:
        raise ProfileNotFound()
    return user


@router.post("/verify-password", response_model=schemas.Confirmation)
async def verify_password(
        data: schemas.PasswordCheck,
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db)
):
    if not data.password:
        raise MissingFields("password is empty")
    user = await _load_user(db, user_id)

    if not await run_in_threadpool(security.verify_password, data.password, user.password):
        raise PasswordMismatch("Password does not match")
    return {"success": True, "message": "Password matches"}


# ── Email change ──────────────────────────────────────────────────────────────

@router.post("/request-email-update-otp", response_model=schemas.Message)
async def request_email_update_otp(
        data: schemas.EmailUpdateRequest,
        session: ServerSession = Depends(get_server_session),
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
        sender: Notifier = Depends(get_notifier)
):
    user = await _load_user(db, user_id)
    await flows.request_email_change(session, db, sender, user, data.email)
    return {"message": "OTP sent successfully for email change"}


@router.patch("/confirm-email-update", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
async def confirm_email_update(
        data: schemas.VerifyOTP,
        session: ServerSession = Depends(get_server_session),
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db)
):
    user = await _load_user(db, user_id)
    return await flows.confirm_email_change(session, db, user, data.otp)


# ── Forgot / reset password ──────────────────────────────────────────────────
# TODO: these routes sit behind the auth gate although a user who forgot their
# password cannot be logged in; move them out once clients stop sending a token.

@router.post("/request-forgot-password-otp", response_model=schemas.Message,
             dependencies=[Depends(get_current_user_id)])
async def forgot_password_otp_send(
        data: schemas.ForgotPasswordRequest,
        session: ServerSession = Depends(get_server_session),
        db: Session = Depends(get_db),
        sender: Notifier = Depends(get_notifier)
):
    await flows.request_reset(session, db, sender, data.email)
    return {"message": "OTP sent successfully for password change"}


@router.post("/match-password-otp", response_model=schemas.Confirmation,
             dependencies=[Depends(get_current_user_id)])
def match_forgot_password_otp(data: schemas.VerifyOTP, session: ServerSession = Depends(get_server_session)):
    flows.confirm_reset_otp(session, data.otp)
    return {"success": True, "message": "OTP matched successfully"}


@router.patch("/reset-forgot-password", response_model=schemas.ResetResult,
              dependencies=[Depends(get_current_user_id)])
async def reset_forgot_password(
        data: schemas.ResetPassword,
        session: ServerSession = Depends(get_server_session),
        db: Session = Depends(get_db)
):
    user, token = await flows.reset_password(session, db, data.password, data.conform_password)
    return {"token": token, "updatedUser": user}
