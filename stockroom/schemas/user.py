from datetime import datetime

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    email: str
    password: str
    display_name: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    password: str


class ResetConfirmRequest(BaseModel):
    email: str
    code: str
    new_password: str


class UserOut(BaseModel):
    id: str
    email: str
    display_name: str
    active: bool = True
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
