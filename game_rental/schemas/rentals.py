from typing import Optional

from pydantic import BaseModel, ConfigDict


class CreateRentalDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    gameID: int
    userID: int


class UpdateRentalDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    gameID: Optional[int] = None
    userID: Optional[int] = None
