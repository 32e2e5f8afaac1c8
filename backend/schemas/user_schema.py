from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

class LoginRequest(BaseModel):
    email: Optional[str] = None
    userName: Optional[str] = None
    password: Optional[str] = None

class RefreshRequest(BaseModel):
    refreshToken: Optional[str] = None

class ChangePasswordRequest(BaseModel):
    oldPassword: Optional[str] = None
    newPassword: Optional[str] = None

class UpdateAccountRequest(BaseModel):
    fullName: Optional[str] = None
    email: Optional[str] = None

class TokenPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(serialization_alias="accessToken")
    refresh_token: str = Field(serialization_alias="refreshToken")
