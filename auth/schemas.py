"""Auth and OAuth request/response schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# Credentials are optional at the schema level so a missing field is
# reported as ERR_MISSING_FIELDS by the service instead of a validation error.
class RegisterRequest(BaseModel):
    email: EmailStr | None = None
    password: str | None = Field(default=None, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr | None = None
    password: str | None = Field(default=None, max_length=128)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken")


class PublicUser(BaseModel):
    id: str
    email: str
    createdAt: int | None = None


class RegisterResponse(BaseModel):
    message: str
    user: PublicUser


class TokenPairResponse(BaseModel):
    message: str
    accessToken: str
    refreshToken: str
    expiresIn: int


class MessageResponse(BaseModel):
    message: str


class ProfileUser(BaseModel):
    id: str
    email: str | None = None
    createdAt: int | None = None
    scopes: list[str]


class ProfileResponse(BaseModel):
    user: ProfileUser


class TokenExchangeRequest(BaseModel):
    grant_type: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    client_id: str | None = None


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    scope: str


class GrantedToken(BaseModel):
    client_id: str
    access_token: str
    scope: str
    created_at: int
    expires_at: int
    is_expired: bool


class TokenListResponse(BaseModel):
    tokens: list[GrantedToken]
