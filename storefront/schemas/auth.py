# storefront/schemas/auth.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class Credential(BaseModel):
    """Bearer credential for an authenticated user identity."""

    token: str = Field(..., min_length=1, repr=False)
    user_id: str | None = None

    model_config = ConfigDict(frozen=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str | None = Field(default=None, max_length=255)
    phone: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthUser(BaseModel):
    id: str
    email: EmailStr | None = None
    full_name: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AuthPayload(BaseModel):
    """`data` section of a successful login/register/refresh response."""

    token: str = Field(..., min_length=1)
    user: AuthUser | None = None

    model_config = ConfigDict(extra="ignore")

    def to_credential(self, fallback_user_id: str | None = None) -> Credential:
        user_id = self.user.id if self.user else fallback_user_id
        return Credential(token=self.token, user_id=user_id)
