"""Rental lifecycle.

A rental starts ACTIVE, may be renewed while ACTIVE, is swept to LATE once
its original period has run out, and is closed as RETURNED or CANCELLED.
Every transition that moves a copy in or out of the shelf also moves the
game's quantity and the subscriber's active-rental count, and all of it is
committed together. Game and user rows are locked for the duration.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.enums import OPEN_RENTAL_STATES, RentalStatus
from models.rental_models import Game, Rental, User
from schemas.rentals import CreateRentalDto, UpdateRentalDto
from services.exceptions import RentalAlreadyClosedError, RentalNotFoundError
from services.game_service import adjust_quantity, get_game, validate_availability
from services.user_service import adjust_active_rental_count, get_user, validate_rental_limit

RENTAL_PERIOD_DAYS = 15
RENEWAL_DAYS = 7

RENTAL_LOGGER = logging.getLogger("game_rental.rentals")


def serialize_rental(rental: Rental) -> dict:
    return {
        "rentalID": rental.RentalID,
        "gameID": rental.GameID,
        "userID": rental.UserID,
        "gameTitle": rental.Game.Title if rental.Game else None,
        "userName": rental.User.Name if rental.User else None,
        "rentalDate": rental.RentalDate,
        "endDate": rental.EndDate,
        "status": rental.Status,
    }


def _require_rows(rows: list[Rental], message: str) -> list[Rental]:
    if not rows:
        raise RentalNotFoundError(message)
    return rows


def get_rental(db: Session, rental_id: int, *, for_update: bool = False) -> Rental:
    stmt = select(Rental).where(Rental.RentalID == rental_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    rental = db.execute(stmt).scalars().first()
    if not rental:
        raise RentalNotFoundError(f"Rental not found with id: {rental_id}")
    return rental


def _status_of(rental: Rental) -> RentalStatus:
    return RentalStatus(rental.Status)


def create_rental(db: Session, payload: CreateRentalDto, today: date | None = None) -> Rental:
    current_date = today or date.today()
    try:
        game = get_game(db, payload.gameID, for_update=True)
        user = get_user(db, payload.userID, for_update=True)
        validate_availability(game)
        validate_rental_limit(user)

        rental = Rental(
            Game=game,
            User=user,
            RentalDate=current_date,
            EndDate=current_date + timedelta(days=RENTAL_PERIOD_DAYS),
            Status=RentalStatus.ACTIVE,
        )
        adjust_quantity(db, game, -1)
        adjust_active_rental_count(db, user, +1)
        db.add(rental)
        db.commit()
    except Exception:
        db.rollback()
        raise

    RENTAL_LOGGER.info(
        "Rental created rental_id=%s game_id=%s user_id=%s end_date=%s",
        rental.RentalID,
        game.GameID,
        user.UserID,
        rental.EndDate,
    )
    return rental


def update_rental(db: Session, rental_id: int, payload: UpdateRentalDto) -> Rental:
    """Reassign the game or user of an open rental.

    This corrects a record; it is not a lifecycle transition, so neither
    counter moves.
    """
    try:
        rental = get_rental(db, rental_id, for_update=True)
        if _status_of(rental) not in OPEN_RENTAL_STATES:
            raise RentalAlreadyClosedError(f"Rental {rental_id} is already closed and cannot be updated.")
        if payload.gameID is not None:
            game = get_game(db, payload.gameID)
            rental.Game = game
            rental.GameID = game.GameID
        if payload.userID is not None:
            user = get_user(db, payload.userID)
            rental.User = user
            rental.UserID = user.UserID
        db.commit()
    except Exception:
        db.rollback()
        raise
    return rental


def delete_rental(db: Session, rental_id: int) -> None:
    rental = get_rental(db, rental_id)
    status = _status_of(rental)
    db.delete(rental)
    db.commit()
    RENTAL_LOGGER.info("Rental deleted rental_id=%s status=%s", rental_id, status.value)


def _close_rental(db: Session, rental_id: int, status: RentalStatus, today: date | None) -> Rental:
    current_date = today or date.today()
    try:
        rental = get_rental(db, rental_id, for_update=True)
        if _status_of(rental) not in OPEN_RENTAL_STATES:
            raise RentalAlreadyClosedError(
                f"Rental {rental_id} is already {_status_of(rental).value.lower()}."
            )
        game = get_game(db, rental.GameID, for_update=True)
        user = get_user(db, rental.UserID, for_update=True)

        rental.Status = status
        rental.EndDate = current_date
        adjust_quantity(db, game, +1)
        adjust_active_rental_count(db, user, -1)
        db.commit()
    except Exception:
        db.rollback()
        raise

    RENTAL_LOGGER.info("Rental %s rental_id=%s", status.value.lower(), rental_id)
    return rental


def return_rental(db: Session, rental_id: int, today: date | None = None) -> Rental:
    return _close_rental(db, rental_id, RentalStatus.RETURNED, today)


def cancel_rental(db: Session, rental_id: int, today: date | None = None) -> Rental:
    return _close_rental(db, rental_id, RentalStatus.CANCELLED, today)


def renew_rental(db: Session, rental_id: int) -> Rental:
    try:
        rental = get_rental(db, rental_id, for_update=True)
        if _status_of(rental) != RentalStatus.ACTIVE:
            raise RentalAlreadyClosedError(
                f"Only active rentals can be renewed. Rental {rental_id} is {_status_of(rental).value}."
            )
        rental.EndDate = rental.EndDate + timedelta(days=RENEWAL_DAYS)
        db.commit()
    except Exception:
        db.rollback()
        raise

    RENTAL_LOGGER.info("Rental renewed rental_id=%s end_date=%s", rental_id, rental.EndDate)
    return rental


def list_rentals(db: Session) -> list[Rental]:
    rows = db.execute(select(Rental).order_by(Rental.RentalID)).scalars().all()
    return _require_rows(list(rows), "No rentals registered yet.")


def list_rentals_by_game(db: Session, game_id: int) -> list[Rental]:
    rows = db.execute(select(Rental).where(Rental.GameID == game_id).order_by(Rental.RentalID)).scalars().all()
    return _require_rows(list(rows), f"No rentals found for game id: {game_id}")


def list_rentals_by_user(db: Session, user_id: int) -> list[Rental]:
    rows = db.execute(select(Rental).where(Rental.UserID == user_id).order_by(Rental.RentalID)).scalars().all()
    return _require_rows(list(rows), f"No rentals found for user id: {user_id}")


def list_rentals_by_rental_date(db: Session, rental_date: date) -> list[Rental]:
    rows = db.execute(
        select(Rental).where(Rental.RentalDate == rental_date).order_by(Rental.RentalID)
    ).scalars().all()
    return _require_rows(list(rows), f"No rentals found with rental date: {rental_date.isoformat()}")


def list_rentals_by_end_date(db: Session, end_date: date) -> list[Rental]:
    rows = db.execute(
        select(Rental).where(Rental.EndDate == end_date).order_by(Rental.RentalID)
    ).scalars().all()
    return _require_rows(list(rows), f"No rentals found with end date: {end_date.isoformat()}")


def list_rentals_by_status(db: Session, status: RentalStatus) -> list[Rental]:
    rows = db.execute(
        select(Rental).where(Rental.Status == status).order_by(Rental.RentalID)
    ).scalars().all()
    return _require_rows(list(rows), f"No rentals found with status: {status.value}")


def list_rentals_by_user_name(db: Session, name: str) -> list[Rental]:
    term = (name or "").strip()
    rows = db.execute(
        select(Rental)
        .join(User, Rental.UserID == User.UserID)
        .where(User.Name.icontains(term, autoescape=True))
        .order_by(Rental.RentalID)
    ).scalars().all()
    return _require_rows(list(rows), f"No rentals found for user name: {name}")


def list_rentals_by_game_title(db: Session, title: str) -> list[Rental]:
    term = (title or "").strip()
    rows = db.execute(
        select(Rental)
        .join(Game, Rental.GameID == Game.GameID)
        .where(Game.Title.icontains(term, autoescape=True))
        .order_by(Rental.RentalID)
    ).scalars().all()
    return _require_rows(list(rows), f"No rentals found for game title: {title}")


def overdue_cutoff(today: date) -> date:
    return today - timedelta(days=RENTAL_PERIOD_DAYS)


def mark_rentals_late(db: Session, today: date | None = None) -> int:
    """Move overdue ACTIVE rentals to LATE and return how many were marked.

    Each rental is re-read under a row lock and committed on its own, so a
    return or cancel racing the sweep either wins cleanly or sees LATE.
    Counters are untouched. Running it again on the same day marks nothing.
    """
    current_date = today or date.today()
    cutoff = overdue_cutoff(current_date)
    candidate_ids = db.execute(
        select(Rental.RentalID)
        .where(Rental.Status == RentalStatus.ACTIVE, Rental.RentalDate < cutoff)
        .order_by(Rental.RentalID)
    ).scalars().all()
    db.rollback()

    marked = 0
    for rental_id in candidate_ids:
        try:
            rental = db.execute(
                select(Rental)
                .where(Rental.RentalID == rental_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().first()
            if rental is None or _status_of(rental) != RentalStatus.ACTIVE or rental.RentalDate >= cutoff:
                db.rollback()
                continue
            rental.Status = RentalStatus.LATE
            db.commit()
        except Exception:
            db.rollback()
            raise
        marked += 1
        RENTAL_LOGGER.info("Rental marked late rental_id=%s rental_date=%s", rental_id, rental.RentalDate)

    return marked


def check_for_late_rentals(session_factory, today: date | None = None) -> int:
    with session_factory() as db:
        marked = mark_rentals_late(db, today)
    RENTAL_LOGGER.info("Late sweep finished marked=%s", marked)
    return marked
