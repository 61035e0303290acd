# roomchat/schemas/auth_schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
import re

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{6,}$")


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(..., min_length=2, max_length=100, alias="firstName")
    last_name: str = Field(..., min_length=2, max_length=100, alias="lastName")
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, value):
        return value.lower().strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        if not _PASSWORD_RULE.match(value):
            raise ValueError(
                "password must contain at least one uppercase letter, one lowercase letter, "
                "one number, and one special character"
            )
        return value


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = Field(False, alias="rememberMe")

    @field_validator("email", mode="before")
    @classmethod
    def normalise_email(cls, value):
        return value.lower().strip() if isinstance(value, str) else value
