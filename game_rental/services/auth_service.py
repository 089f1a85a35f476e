from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from models.enums import ROLE_GRANTS, UserRole
from models.rental_models import User
from services.exceptions import AuthenticationError, PermissionDeniedError
from services.passwords import verify_password
from services.tokens import create_access_token, decode_access_token
from services.user_service import find_user_by_email

AUTH_LOGGER = logging.getLogger("game_rental.auth")


def authenticate(db: Session, email: str, password: str) -> User:
    user = find_user_by_email(db, email)
    if not user or not verify_password(user, password):
        AUTH_LOGGER.warning("Login failed email=%s", (email or "").strip().lower())
        raise AuthenticationError("Invalid credentials.")
    AUTH_LOGGER.info("Login success user_id=%s", user.UserID)
    return user


def login(db: Session, email: str, password: str) -> str:
    user = authenticate(db, email, password)
    return create_access_token(user)


def resolve_token_user(db: Session, token: str) -> User:
    try:
        user_id = decode_access_token(token)
    except AuthenticationError as exc:
        AUTH_LOGGER.warning("Token rejected reason=%s", exc.message)
        raise
    user = db.get(User, user_id)
    if not user:
        AUTH_LOGGER.warning("Token rejected reason=unknown_subject")
        raise AuthenticationError("User not found for token.")
    return user


def has_role(user: User, role: UserRole) -> bool:
    return role in ROLE_GRANTS.get(UserRole(user.Role), set())


def require_role(user: User, role: UserRole) -> None:
    if not has_role(user, role):
        AUTH_LOGGER.warning("Access denied user_id=%s required=%s", user.UserID, role.value)
        raise PermissionDeniedError(f"{role.value.capitalize()} role required.")
