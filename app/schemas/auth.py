"""Pydantic schemas for registration, login and the current user."""
from pydantic import BaseModel, Field


class RegisterSchema(BaseModel):
    email: str
    password: str
    username: str = Field(min_length=1, max_length=64)


class LoginSchema(BaseModel):
    email: str
    password: str


class UserOutSchema(BaseModel):
    id: int
    email: str
    username: str

    class Config:
        from_attributes = True


class TokenOutSchema(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOutSchema
