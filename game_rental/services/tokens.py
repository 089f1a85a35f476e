"""Stateless access tokens.

HS256 JWTs whose subject is the user's id, issued by ``TOKEN_ISSUER``
and valid for ``JWT_EXPIRE_MINUTES``.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from models.rental_models import User
from services.exceptions import AuthenticationError

load_dotenv()

TOKEN_ISSUER = "Game Rental API"
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.environ.get("JWT_EXPIRE_MINUTES") or "120")


def _require_jwt_secret() -> str:
    raw = (os.environ.get("JWT_SECRET") or "").strip()
    if len(raw) < 32:
        raise RuntimeError("JWT_SECRET must be set and at least 32 characters long.")
    return raw


_JWT_SECRET = _require_jwt_secret()


def create_access_token(user: User, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "iss": TOKEN_ISSUER,
        "sub": str(user.UserID),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(minutes=JWT_EXPIRE_MINUTES)).timestamp()),
    }
    return jwt.encode(payload, _JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id in a valid token's subject, or raise ``AuthenticationError``."""
    try:
        claims = jwt.decode(token, _JWT_SECRET, algorithms=[JWT_ALGORITHM], issuer=TOKEN_ISSUER)
    except ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except JWTClaimsError as exc:
        raise AuthenticationError("Token verification failed") from exc
    except JWTError as exc:
        if "signature" in str(exc).lower():
            raise AuthenticationError("Invalid token signature") from exc
        raise AuthenticationError("Token verification failed") from exc

    subject = str(claims.get("sub") or "")
    if not subject.isdigit():
        raise AuthenticationError("Token verification failed")
    return int(subject)
