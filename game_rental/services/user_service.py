from __future__ import annotations

from sqlalchemy import exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.enums import MAX_ACTIVE_RENTALS_BY_PLAN, SubscriptionPlan, UserRole
from models.rental_models import Rental, User
from schemas.users import RegisterUserDto, UpdateUserDto
from services.passwords import set_password
from services.exceptions import (
    EmailAlreadyRegisteredError,
    PlanLimitExceededError,
    UserInUseError,
    UserNotFoundError,
)


def _normalize_email(raw: str | None) -> str:
    return (raw or "").strip().lower()


def serialize_user(user: User) -> dict:
    return {
        "userID": user.UserID,
        "name": user.Name,
        "email": user.Email,
        "role": user.Role,
        "plan": user.Plan,
        "activeRentals": user.ActiveRentals,
    }


def _require_rows(rows: list[User], message: str) -> list[User]:
    if not rows:
        raise UserNotFoundError(message)
    return rows


def find_user_by_email(db: Session, email: str) -> User | None:
    normalized = _normalize_email(email)
    if not normalized:
        return None
    return db.execute(select(User).where(func.lower(User.Email) == normalized)).scalars().first()


def _ensure_email_free(db: Session, email: str, *, exclude_user_id: int | None = None) -> None:
    existing = find_user_by_email(db, email)
    if existing and existing.UserID != exclude_user_id:
        raise EmailAlreadyRegisteredError(email)


def _commit_user(db: Session, email: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise EmailAlreadyRegisteredError(email) from exc


def get_user(db: Session, user_id: int, *, for_update: bool = False) -> User:
    stmt = select(User).where(User.UserID == user_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    user = db.execute(stmt).scalars().first()
    if not user:
        raise UserNotFoundError(f"User not found with id: {user_id}")
    return user


def create_user(db: Session, payload: RegisterUserDto, *, role: UserRole = UserRole.USER) -> User:
    email = _normalize_email(payload.email)
    _ensure_email_free(db, email)

    user = User(
        Name=payload.name,
        Email=email,
        Role=role,
        Plan=payload.plan,
        ActiveRentals=0,
    )
    set_password(user, payload.password)
    db.add(user)
    _commit_user(db, email)
    return user


def update_user(db: Session, user_id: int, payload: UpdateUserDto) -> User:
    user = get_user(db, user_id, for_update=True)
    if payload.name is not None:
        user.Name = payload.name
    if payload.email is not None:
        email = _normalize_email(payload.email)
        _ensure_email_free(db, email, exclude_user_id=user.UserID)
        user.Email = email
    if payload.password is not None:
        set_password(user, payload.password)
    if payload.role is not None:
        user.Role = payload.role
    if payload.plan is not None:
        user.Plan = payload.plan
    _commit_user(db, user.Email)
    return user


def delete_user(db: Session, user_id: int) -> None:
    user = get_user(db, user_id)
    in_use = db.execute(select(exists().where(Rental.UserID == user.UserID))).scalar()
    if in_use:
        raise UserInUseError(f"User {user.UserID} is referenced by rentals and cannot be deleted.")
    db.delete(user)
    db.commit()


def list_users(db: Session) -> list[User]:
    rows = db.execute(select(User).order_by(User.UserID)).scalars().all()
    return _require_rows(list(rows), "No users registered yet.")


def list_users_by_name(db: Session, name: str) -> list[User]:
    term = (name or "").strip()
    rows = db.execute(
        select(User).where(User.Name.icontains(term, autoescape=True)).order_by(User.UserID)
    ).scalars().all()
    return _require_rows(list(rows), f"No users found with name: {name}")


def list_users_by_email(db: Session, email: str) -> list[User]:
    term = (email or "").strip()
    rows = db.execute(
        select(User).where(User.Email.icontains(term, autoescape=True)).order_by(User.UserID)
    ).scalars().all()
    return _require_rows(list(rows), f"No users found with email: {email}")


def list_users_by_role(db: Session, role: UserRole) -> list[User]:
    rows = db.execute(select(User).where(User.Role == role).order_by(User.UserID)).scalars().all()
    return _require_rows(list(rows), f"No users found with role: {role.value}")


def list_users_by_plan(db: Session, plan: SubscriptionPlan) -> list[User]:
    rows = db.execute(select(User).where(User.Plan == plan).order_by(User.UserID)).scalars().all()
    return _require_rows(list(rows), f"No users found with plan: {plan.value}")


def max_active_rentals(user: User) -> int:
    return MAX_ACTIVE_RENTALS_BY_PLAN[SubscriptionPlan(user.Plan)]


def validate_rental_limit(user: User) -> None:
    if (user.ActiveRentals or 0) >= max_active_rentals(user):
        raise PlanLimitExceededError(user)


def adjust_active_rental_count(db: Session, user: User, delta: int) -> None:
    # LATE rentals stay counted until returned or cancelled
    user.ActiveRentals = (user.ActiveRentals or 0) + delta
    db.add(user)
