"""
Pydantic schemas for the catalog API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AddProductRequest(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    new_price: float = Field(..., ge=0)
    old_price: Optional[float] = Field(default=None, ge=0)
    image: Optional[str] = None
    available: Optional[bool] = None
    features: list[str] = Field(default_factory=list)


class UpdateProductRequest(BaseModel):
    id: int
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    new_price: Optional[float] = Field(default=None, ge=0)
    old_price: Optional[float] = Field(default=None, ge=0)
    available: Optional[bool] = None
    features: Optional[list[str]] = None


class RemoveProductRequest(BaseModel):
    id: Optional[int] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    image: Optional[str] = None
    imageVersion: int = 1
    category: str
    new_price: float
    old_price: float = 0
    available: bool = True
    features: list[str] = Field(default_factory=list)
    date: Optional[str] = None


class ProductSavedResponse(BaseModel):
    success: bool = True
    product: ProductResponse
    name: str


class ProductUpdatedResponse(BaseModel):
    success: bool = True
    product: ProductResponse


class UploadResponse(BaseModel):
    success: bool = True
    image_url: str
    public_id: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    success: bool = True
    token: str

