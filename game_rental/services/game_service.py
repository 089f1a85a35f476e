from __future__ import annotations

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from models.enums import GameGenre
from models.rental_models import Game, Rental
from schemas.games import CreateGameDto, UpdateGameDto
from services.exceptions import GameInUseError, GameNotAvailableError, GameNotFoundError


def serialize_game(game: Game) -> dict:
    return {
        "gameID": game.GameID,
        "title": game.Title,
        "genre": game.Genre,
        "platforms": sorted(game.Platforms, key=lambda item: item.value),
        "quantity": game.Quantity,
        "available": bool(game.Available),
    }


def _require_rows(rows: list[Game], message: str) -> list[Game]:
    if not rows:
        raise GameNotFoundError(message)
    return rows


def get_game(db: Session, game_id: int, *, for_update: bool = False) -> Game:
    stmt = select(Game).where(Game.GameID == game_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    game = db.execute(stmt).scalars().first()
    if not game:
        raise GameNotFoundError(f"Game not found with id: {game_id}")
    return game


def create_game(db: Session, payload: CreateGameDto) -> Game:
    game = Game(Title=payload.title, Genre=payload.genre, Quantity=payload.quantity)
    game.set_platforms(payload.platforms)
    db.add(game)
    db.commit()
    return game


def update_game(db: Session, game_id: int, payload: UpdateGameDto) -> Game:
    game = get_game(db, game_id, for_update=True)
    if payload.title is not None:
        game.Title = payload.title
    if payload.genre is not None:
        game.Genre = payload.genre
    if payload.platforms is not None:
        game.set_platforms(payload.platforms)
    if payload.quantity is not None:
        game.Quantity = payload.quantity
    db.commit()
    return game


def delete_game(db: Session, game_id: int) -> None:
    game = get_game(db, game_id)
    in_use = db.execute(select(exists().where(Rental.GameID == game.GameID))).scalar()
    if in_use:
        raise GameInUseError(f"Game {game.GameID} is referenced by rentals and cannot be deleted.")
    db.delete(game)
    db.commit()


def list_games(db: Session) -> list[Game]:
    rows = db.execute(select(Game).order_by(Game.GameID)).scalars().all()
    return _require_rows(list(rows), "No games registered yet.")


def list_games_by_title(db: Session, title: str) -> list[Game]:
    term = (title or "").strip()
    rows = db.execute(
        select(Game).where(Game.Title.icontains(term, autoescape=True)).order_by(Game.GameID)
    ).scalars().all()
    return _require_rows(list(rows), f"No games found with title: {title}")


def list_games_by_genre(db: Session, genre: GameGenre) -> list[Game]:
    rows = db.execute(select(Game).where(Game.Genre == genre).order_by(Game.GameID)).scalars().all()
    return _require_rows(list(rows), f"No games found for genre: {genre.value}")


def list_available_games(db: Session) -> list[Game]:
    rows = db.execute(select(Game).where(Game.Available).order_by(Game.GameID)).scalars().all()
    return _require_rows(list(rows), "No games available at the moment.")


def validate_availability(game: Game) -> None:
    if (game.Quantity or 0) <= 0:
        raise GameNotAvailableError(game)


def adjust_quantity(db: Session, game: Game, delta: int) -> None:
    """Shift the copy count of ``game`` by ``delta`` inside the caller's transaction.

    Rental creation passes -1 after ``validate_availability``; return and
    cancel pass +1. Availability follows from the new quantity.
    """
    game.Quantity = (game.Quantity or 0) + delta
    db.add(game)
