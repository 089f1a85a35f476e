import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime
from http import HTTPStatus

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from db.base import Base
from db.deps import get_db
from db.session import SessionLocal, engine
from models.enums import GameGenre, RentalStatus, SubscriptionPlan, UserRole
from models.rental_models import User
from schemas.games import CreateGameDto, UpdateGameDto
from schemas.rentals import CreateRentalDto, UpdateRentalDto
from schemas.users import LoginDto, RegisterUserDto, UpdateUserDto
from services.auth_service import login, require_role, resolve_token_user
from services.exceptions import AuthenticationError, RentalApiError
from services.game_service import (
    create_game,
    delete_game,
    get_game,
    list_available_games,
    list_games,
    list_games_by_genre,
    list_games_by_title,
    serialize_game,
    update_game,
)
from services.late_sweep_scheduler import LateRentalScheduler
from services.rental_service import (
    cancel_rental,
    create_rental,
    delete_rental,
    get_rental,
    list_rentals,
    list_rentals_by_end_date,
    list_rentals_by_game,
    list_rentals_by_game_title,
    list_rentals_by_rental_date,
    list_rentals_by_status,
    list_rentals_by_user,
    list_rentals_by_user_name,
    mark_rentals_late,
    renew_rental,
    return_rental,
    serialize_rental,
    update_rental,
)
from services.user_service import (
    create_user,
    delete_user,
    get_user,
    list_users,
    list_users_by_email,
    list_users_by_name,
    list_users_by_plan,
    list_users_by_role,
    serialize_user,
    update_user,
)


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _parse_bool_env(name: str, default: str) -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


API_LOGGER = logging.getLogger("game_rental.api")
logging.getLogger("game_rental").setLevel((os.environ.get("LOG_LEVEL") or "INFO").strip().upper())

LATE_SWEEP_ENABLED = _parse_bool_env("LATE_SWEEP_ENABLED", "true")
LATE_SWEEP_TIME = (os.environ.get("LATE_SWEEP_TIME") or "00:00").strip()


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    scheduler = None
    if LATE_SWEEP_ENABLED:
        scheduler = LateRentalScheduler(SessionLocal, run_at=LATE_SWEEP_TIME)
        scheduler.start()

    yield

    if scheduler is not None:
        scheduler.stop()


app = FastAPI(
    title="Game Rental API",
    description="Catalog, subscribers and rentals for a game-rental shop.",
    lifespan=lifespan,
)

_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000",
)
_CORS_ALLOW_CREDENTIALS = _parse_bool_env("CORS_ALLOW_CREDENTIALS", "true")
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------
# Error handling
# ------------------------------------------------------------
def _error_response(status_code: int, message: str) -> JSONResponse:
    try:
        reason = HTTPStatus(status_code).phrase
    except ValueError:
        reason = "Error"
    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_code,
            "error": reason,
            "message": message,
            "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        },
    )


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = [str(item) for item in error.get("loc", ()) if item not in ("body", "query", "path", "header")]
        field = ".".join(loc) or "request"
        parts.append(f"[{field}] : {error.get('msg', 'Invalid value')}")
    return "; ".join(parts) or "Invalid request."


@app.exception_handler(RentalApiError)
async def rental_api_error_handler(_: Request, exc: RentalApiError):
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    return _error_response(400, _format_validation_errors(exc))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
    API_LOGGER.error("Unhandled error path=%s", request.url.path, exc_info=exc)
    return _error_response(500, "Unexpected error.")


# ------------------------------------------------------------
# Auth helpers
# ------------------------------------------------------------
def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Not authenticated.")
    return token.strip()


def _require_user(db: Session, authorization: str | None) -> User:
    return resolve_token_user(db, _bearer_token(authorization))


def _require_admin(db: Session, authorization: str | None) -> User:
    user = _require_user(db, authorization)
    require_role(user, UserRole.ADMIN)
    return user


# ------------------------------------------------------------
# Health
# ------------------------------------------------------------
@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/healthz/db")
def healthcheck_db(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


# ------------------------------------------------------------
# Auth
# ------------------------------------------------------------
@app.post("/auth/register", status_code=201)
def auth_register(payload: RegisterUserDto, db: Session = Depends(get_db)):
    user = create_user(db, payload)
    return serialize_user(user)


@app.post("/auth/login")
def auth_login(payload: LoginDto, db: Session = Depends(get_db)):
    return {"token": login(db, payload.email, payload.password)}


@app.get("/auth/me")
def auth_me(db: Session = Depends(get_db), authorization: str | None = Header(None)):
    user = _require_user(db, authorization)
    return serialize_user(user)


# ------------------------------------------------------------
# Games
# ------------------------------------------------------------
@app.post("/games", status_code=201)
def post_game(payload: CreateGameDto, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_game(create_game(db, payload))


@app.get("/games")
def get_games(
    title: str | None = Query(None),
    genre: GameGenre | None = Query(None),
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
):
    _require_user(db, authorization)
    if title is not None:
        rows = list_games_by_title(db, title)
    elif genre is not None:
        rows = list_games_by_genre(db, genre)
    else:
        rows = list_games(db)
    return [serialize_game(game) for game in rows]


@app.get("/games/available")
def get_available_games(db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_user(db, authorization)
    return [serialize_game(game) for game in list_available_games(db)]


@app.get("/games/{game_id}")
def get_game_by_id(game_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_user(db, authorization)
    return serialize_game(get_game(db, game_id))


@app.patch("/games/{game_id}")
def patch_game(
    game_id: int,
    payload: UpdateGameDto,
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
):
    _require_admin(db, authorization)
    return serialize_game(update_game(db, game_id, payload))


@app.delete("/games/{game_id}", status_code=204)
def remove_game(game_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    delete_game(db, game_id)


# ------------------------------------------------------------
# Users
# ------------------------------------------------------------
@app.post("/users", status_code=201)
def post_user(payload: RegisterUserDto, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_user(create_user(db, payload))


@app.get("/users")
def get_users(
    name: str | None = Query(None),
    email: str | None = Query(None),
    role: UserRole | None = Query(None),
    plan: SubscriptionPlan | None = Query(None),
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
):
    _require_admin(db, authorization)
    if name is not None:
        rows = list_users_by_name(db, name)
    elif email is not None:
        rows = list_users_by_email(db, email)
    elif role is not None:
        rows = list_users_by_role(db, role)
    elif plan is not None:
        rows = list_users_by_plan(db, plan)
    else:
        rows = list_users(db)
    return [serialize_user(user) for user in rows]


@app.get("/users/{user_id}")
def get_user_by_id(user_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_user(get_user(db, user_id))


@app.patch("/users/{user_id}")
def patch_user(
    user_id: int,
    payload: UpdateUserDto,
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
):
    _require_admin(db, authorization)
    return serialize_user(update_user(db, user_id, payload))


@app.delete("/users/{user_id}", status_code=204)
def remove_user(user_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    delete_user(db, user_id)


# ------------------------------------------------------------
# Rentals
# ------------------------------------------------------------
@app.post("/rentals", status_code=201)
def post_rental(payload: CreateRentalDto, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_rental(create_rental(db, payload))


@app.get("/rentals")
def get_rentals(
    rental_date: date | None = Query(None, alias="rental-date"),
    end_date: date | None = Query(None, alias="end-date"),
    status: RentalStatus | None = Query(None),
    username: str | None = Query(None),
    title: str | None = Query(None),
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
):
    _require_admin(db, authorization)
    if rental_date is not None:
        rows = list_rentals_by_rental_date(db, rental_date)
    elif end_date is not None:
        rows = list_rentals_by_end_date(db, end_date)
    elif status is not None:
        rows = list_rentals_by_status(db, status)
    elif username is not None:
        rows = list_rentals_by_user_name(db, username)
    elif title is not None:
        rows = list_rentals_by_game_title(db, title)
    else:
        rows = list_rentals(db)
    return [serialize_rental(rental) for rental in rows]


@app.post("/rentals/late-sweep")
def post_late_sweep(db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return {"marked": mark_rentals_late(db)}


@app.get("/rentals/game-id/{game_id}")
def get_rentals_by_game(game_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return [serialize_rental(rental) for rental in list_rentals_by_game(db, game_id)]


@app.get("/rentals/user-id/{user_id}")
def get_rentals_by_user(user_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return [serialize_rental(rental) for rental in list_rentals_by_user(db, user_id)]


@app.put("/rentals/return/{rental_id}")
def put_return_rental(rental_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_rental(return_rental(db, rental_id))


@app.put("/rentals/renew/{rental_id}")
def put_renew_rental(rental_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_rental(renew_rental(db, rental_id))


@app.put("/rentals/cancel/{rental_id}")
def put_cancel_rental(rental_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_rental(cancel_rental(db, rental_id))


@app.get("/rentals/{rental_id}")
def get_rental_by_id(rental_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    return serialize_rental(get_rental(db, rental_id))


@app.patch("/rentals/{rental_id}")
def patch_rental(
    rental_id: int,
    payload: UpdateRentalDto,
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
):
    _require_admin(db, authorization)
    return serialize_rental(update_rental(db, rental_id, payload))


@app.delete("/rentals/{rental_id}", status_code=204)
def remove_rental(rental_id: int, db: Session = Depends(get_db), authorization: str | None = Header(None)):
    _require_admin(db, authorization)
    delete_rental(db, rental_id)
