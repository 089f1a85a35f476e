import os
import sys
from pathlib import Path

os.environ.setdefault("GAME_RENTAL_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-" + "x" * 40)
os.environ.setdefault("LATE_SWEEP_ENABLED", "false")

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from db.base import Base
from db.session import SessionLocal, engine
from models.enums import GameGenre, Platform, SubscriptionPlan, UserRole
from models.rental_models import Game, User
from services.passwords import set_password

DEFAULT_PASSWORD = "secret1"


def reset_schema() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def make_game(db, title="Elden Ring", quantity=1, genre=GameGenre.SOULSLIKE, platforms=(Platform.PC,)) -> Game:
    game = Game(Title=title, Genre=genre, Quantity=quantity)
    game.set_platforms(platforms)
    db.add(game)
    db.commit()
    return game


def make_user(
    db,
    name="Ada",
    email="ada@example.com",
    plan=SubscriptionPlan.NOOB,
    role=UserRole.USER,
    password=DEFAULT_PASSWORD,
) -> User:
    user = User(Name=name, Email=email, Role=role, Plan=plan, ActiveRentals=0)
    set_password(user, password)
    db.add(user)
    db.commit()
    return user


__all__ = [
    "APP_DIR",
    "DEFAULT_PASSWORD",
    "SessionLocal",
    "engine",
    "make_game",
    "make_user",
    "reset_schema",
]
