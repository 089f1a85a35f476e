from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models.enums import SubscriptionPlan, UserRole


class RegisterUserDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(max_length=255)
    email: EmailStr
    password: str = Field(min_length=6, max_length=20)
    plan: SubscriptionPlan

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()


class UpdateUserDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=20)
    role: Optional[UserRole] = None
    plan: Optional[SubscriptionPlan] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("name must not be blank")
        return value.strip() if value is not None else None


class LoginDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: EmailStr
    password: str = Field(min_length=6, max_length=20)
