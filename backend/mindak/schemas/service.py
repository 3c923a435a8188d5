"""
Mindak Reservations Backend — Service Catalog Schemas
=====================================================

What:  Request/response models for service categories and services.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class CategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    # Money: decimal with at most 2 fraction digits, never negative
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    category_id: uuid.UUID
    is_active: bool = True
    display_order: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    category_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = Field(default=None, ge=0)


class ServiceResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    category_id: uuid.UUID
    is_active: bool
    display_order: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BulkStatusRequest(BaseModel):
    ids: List[uuid.UUID] = Field(min_length=1)
    is_active: bool


class BulkStatusResponse(BaseModel):
    updated: int


class PublicService(BaseModel):
    """Catalog entry as shown on the public services page."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    category_id: uuid.UUID
    category_name: str
    display_order: int
