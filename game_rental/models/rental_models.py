from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, String
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from db.base import Base
from models.enums import GameGenre, Platform, RentalStatus, SubscriptionPlan, UserRole


def _enum_column(enum_cls, length: int) -> Enum:
    return Enum(enum_cls, native_enum=False, length=length, validate_strings=True)


class Game(Base):
    __tablename__ = "Games"

    GameID = Column(Integer, primary_key=True)
    Title = Column(String(255), nullable=False)
    Genre = Column(_enum_column(GameGenre, 30), nullable=False)
    Quantity = Column(Integer, nullable=False, default=0)

    PlatformEntries = relationship(
        "GamePlatform",
        back_populates="Game",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    Rentals = relationship("Rental", back_populates="Game")

    @hybrid_property
    def Available(self) -> bool:
        return (self.Quantity or 0) > 0

    @Available.expression
    def Available(cls):
        return cls.Quantity > 0

    @property
    def Platforms(self) -> set[Platform]:
        return {entry.Platform for entry in self.PlatformEntries}

    def set_platforms(self, platforms) -> None:
        wanted = set(platforms)
        self.PlatformEntries = [entry for entry in self.PlatformEntries if entry.Platform in wanted]
        current = {entry.Platform for entry in self.PlatformEntries}
        for platform in sorted(wanted - current, key=lambda item: item.value):
            self.PlatformEntries.append(GamePlatform(Platform=platform))


class GamePlatform(Base):
    __tablename__ = "GamePlatforms"

    GameID = Column(Integer, ForeignKey("Games.GameID", ondelete="CASCADE"), primary_key=True)
    Platform = Column(_enum_column(Platform, 20), primary_key=True)

    Game = relationship("Game", back_populates="PlatformEntries")


class User(Base):
    __tablename__ = "Users"

    UserID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    Email = Column(String(255), nullable=False, unique=True, index=True)
    PasswordHash = Column(String(256), nullable=False)
    PasswordSalt = Column(String(64), nullable=False)
    Role = Column(_enum_column(UserRole, 20), nullable=False, default=UserRole.USER)
    Plan = Column(_enum_column(SubscriptionPlan, 20), nullable=False)
    ActiveRentals = Column(Integer, nullable=False, default=0)

    Rentals = relationship("Rental", back_populates="User")


class Rental(Base):
    __tablename__ = "Rentals"

    RentalID = Column(Integer, primary_key=True)
    GameID = Column(Integer, ForeignKey("Games.GameID"), nullable=False, index=True)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False, index=True)
    RentalDate = Column(Date, nullable=False)
    EndDate = Column(Date, nullable=False)
    Status = Column(_enum_column(RentalStatus, 20), nullable=False, default=RentalStatus.ACTIVE, index=True)

    Game = relationship("Game", back_populates="Rentals")
    User = relationship("User", back_populates="Rentals")
