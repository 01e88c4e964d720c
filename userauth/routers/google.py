import logging

from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import crud
from ..core import security
from ..core.config import settings
from ..database import get_db
from .users import set_auth_cookie

logger = logging.getLogger(__name__)

router = APIRouter()

oauth = OAuth()
oauth.register(
    name='google',
    client_id=settings.GOOGLE_CLIENT_ID,
    client_secret=settings.GOOGLE_CLIENT_SECRET,
    server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
    client_kwargs={'scope': 'openid email profile'}
)


@router.get("/auth/google/login")
async def login_via_google(request: Request):
    return await oauth.google.authorize_redirect(request, settings.GOOGLE_REDIRECT_URI)


@router.get("/auth/google/callback")
async def auth_google_callback(request: Request, db: Session = Depends(get_db)):
    failed = RedirectResponse(url=f"{settings.FRONTEND_URL}/login?error=oauth_failed")
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as e:
        logger.warning("Google sign-in failed: %s", e.error)
        return failed

    user_info = token.get("userinfo")
    if not user_info or not user_info.get("email"):
        logger.warning("Google sign-in returned no email")
        return failed

    email = user_info["email"]
    user = await run_in_threadpool(crud.get_user_by_email, db, email)
    if user is None:
        user = await run_in_threadpool(crud.create_google_user, db, email, user_info.get("name"))

    access_token = security.create_user_token(user.id, user.email)
    response = RedirectResponse(url=settings.FRONTEND_URL)
    set_auth_cookie(response, access_token)
    return response
