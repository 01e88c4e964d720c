from fastapi import Request, Depends

from .security import decode_access_token
from userauth.errors import Unauthorized

TOKEN_COOKIE = "token"


def _strip_bearer(value: str) -> str:
    return value.replace("Bearer ", "", 1).strip()


async def get_token_from_cookie_or_header(request: Request):
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return _strip_bearer(token)

    auth_header = request.headers.get("Authorization")
    if auth_header and _strip_bearer(auth_header):
        return _strip_bearer(auth_header)

    raise Unauthorized()


async def get_current_user_id(token: str = Depends(get_token_from_cookie_or_header)) -> str:
    payload = decode_access_token(token)
    return payload["sub"]

