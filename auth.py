from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Request
from jose import jwt, JWTError

import settings

JWT_ALG = "HS256"
COOKIE_NAME = "token"
TOKEN_LIFETIME = timedelta(hours=23)


def cookie_options() -> dict:
    # Cross-site frontend in production, same-site everywhere else
    return {
        "httponly": True,
        "secure": settings.PRODUCTION,
        "samesite": "none" if settings.PRODUCTION else "strict",
    }


def issue_token(identity: dict) -> str:
    payload = dict(identity)
    payload["exp"] = int((datetime.now(timezone.utc) + TOKEN_LIFETIME).timestamp())
    return jwt.encode(payload, settings.ACCESS_TOKEN_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    # Identity payloads are opaque: only signature and expiry are checked
    return jwt.decode(
        token,
        settings.ACCESS_TOKEN_SECRET,
        algorithms=[JWT_ALG],
        options={"verify_aud": False, "verify_sub": False},
    )


def get_current_user(request: Request) -> dict:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized access")
    try:
        return decode_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Unauthorized access")


def owns_container(identity: dict, container: dict) -> bool:
    if identity.get("sub") == container["owner_id"]:
        return True
    email = identity.get("email")
    return bool(email) and email == container.get("email")
