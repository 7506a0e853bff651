# model/api.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    firstName: str
    lastName: str
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class User(BaseModel):
    id: int | str
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    role: Optional[str] = None
    points: int = 0
    isActive: bool = True
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class AuthResponse(BaseModel):
    success: bool = False
    token: Optional[str] = None
    user: Optional[User] = None
    message: Optional[str] = None
    error: Optional[str] = None


class UploadResponse(BaseModel):
    success: bool = False
    fileId: Optional[str] = None
    message: Optional[str] = None
    queuePosition: Optional[int] = None
    error: Optional[str] = None
