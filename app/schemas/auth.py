"""Pydantic schemas for authentication endpoints."""

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=256)
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(min_length=1, max_length=256)


class TokenResponse(BaseModel):
    token: str
    user_id: int
    email: str
    display_name: str
