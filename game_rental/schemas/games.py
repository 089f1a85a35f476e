from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.enums import GameGenre, Platform


class CreateGameDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(max_length=255)
    genre: GameGenre
    platforms: set[Platform] = Field(min_length=1)
    quantity: int = Field(ge=1, le=100)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value.strip()


class UpdateGameDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = Field(default=None, max_length=255)
    genre: Optional[GameGenre] = None
    platforms: Optional[set[Platform]] = Field(default=None, min_length=1)
    quantity: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("title must not be blank")
        return value.strip() if value is not None else None
