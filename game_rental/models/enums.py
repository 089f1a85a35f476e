import enum


class GameGenre(str, enum.Enum):
    ACTION = "ACTION"
    ADVENTURE = "ADVENTURE"
    BATTLE_ROYALE = "BATTLE_ROYALE"
    FIGHTING = "FIGHTING"
    FPS = "FPS"
    HACK_N_SLASH = "HACK_N_SLASH"
    HORROR = "HORROR"
    METROIDVANIA = "METROIDVANIA"
    MOBA = "MOBA"
    MMORPG = "MMORPG"
    PLATFORMER = "PLATFORMER"
    PUZZLE = "PUZZLE"
    RACING = "RACING"
    ROGUELIKE = "ROGUELIKE"
    RPG = "RPG"
    RTS = "RTS"
    SIMULATION = "SIMULATION"
    SOULSLIKE = "SOULSLIKE"
    SPORTS = "SPORTS"
    SURVIVAL = "SURVIVAL"


class Platform(str, enum.Enum):
    PLAYSTATION = "PLAYSTATION"
    XBOX = "XBOX"
    NINTENDO = "NINTENDO"
    ARCADE = "ARCADE"
    MOBILE = "MOBILE"
    PC = "PC"
    VR = "VR"
    OTHER = "OTHER"


class RentalStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    LATE = "LATE"
    CANCELLED = "CANCELLED"


# LATE rentals still hold the copy and still count against the plan.
OPEN_RENTAL_STATES = frozenset({RentalStatus.ACTIVE, RentalStatus.LATE})


class SubscriptionPlan(str, enum.Enum):
    NOOB = "NOOB"
    PRO = "PRO"
    LEGEND = "LEGEND"


MAX_ACTIVE_RENTALS_BY_PLAN = {
    SubscriptionPlan.NOOB: 1,
    SubscriptionPlan.PRO: 3,
    SubscriptionPlan.LEGEND: 5,
}


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"


# ADMIN carries every USER capability.
ROLE_GRANTS = {
    UserRole.ADMIN: frozenset({UserRole.ADMIN, UserRole.USER}),
    UserRole.USER: frozenset({UserRole.USER}),
}
