"""
Database Schemas

Define your MongoDB collection schemas here using Pydantic models.
These schemas are used for data validation in your application.

Each stored model maps to one collection:
- Garment -> "garments" collection
- User -> "users" collection

Fields are snake_case in the database; every model serializes with
camelCase aliases (createdAt, isActive, ...) for API responses.
"""
import math
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

Availability = Literal["in_stock", "out_of_stock", "pre_order"]
Role = Literal["admin", "moderator", "user"]


def _as_utc(value: datetime) -> datetime:
    # Stored dates are UTC; drivers without tz_aware hand them back naive
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class StoredEntity(BaseModel):
    """Anything kept in a collection: has an id and server-managed timestamps."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: Optional[str] = Field(None, description="Hex ObjectId assigned by the store")
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


class GarmentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(..., min_length=2, max_length=200, description="Garment name")
    description: str = Field(..., min_length=1, max_length=5000)
    price: float = Field(..., ge=0, description="Price, never negative")
    size: str = Field(..., min_length=1, max_length=200)
    availability: Availability = Field("in_stock", description="Stock status")
    vendor: str = Field(..., min_length=1, max_length=120, description="Vendor, stored lowercase")
    categories: str = Field(..., min_length=1, max_length=120, description="Category, stored lowercase")
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list, description="Stored image paths")

    @field_validator("vendor", "categories", mode="before")
    @classmethod
    def lowercase(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class GarmentUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    size: Optional[str] = Field(None, min_length=1, max_length=200)
    availability: Optional[Availability] = None
    vendor: Optional[str] = Field(None, min_length=1, max_length=120)
    categories: Optional[str] = Field(None, min_length=1, max_length=120)
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None

    @field_validator("vendor", "categories", mode="before")
    @classmethod
    def lowercase(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class Garment(StoredEntity, GarmentCreate):
    """
    Garments collection schema
    Collection name: "garments"
    """

    model_config = ConfigDict(extra="ignore")


class UserPublic(StoredEntity):
    username: str
    email: str
    role: Role = "user"
    is_active: bool = True
    last_login: Optional[UtcDatetime] = None


class User(StoredEntity):
    """
    Users collection schema
    Collection name: "users"
    """

    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr = Field(..., description="Login identifier, unique and lowercase")
    password_hash: str = Field(..., description="BCrypt hashed password", repr=False)
    role: Role = Field("user", description="Role: admin | moderator | user")
    refresh_token: Optional[str] = Field(None, description="The one active refresh token", repr=False)
    is_active: bool = Field(True, description="Whether the account may log in")
    last_login: Optional[UtcDatetime] = None

    @field_validator("email", mode="before")
    @classmethod
    def lowercase_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    def to_public(self) -> UserPublic:
        return UserPublic.model_validate(
            self.model_dump(exclude={"password_hash", "refresh_token"})
        )


T = TypeVar("T")


class PaginationResult(BaseModel, Generic[T]):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    docs: List[T]
    total_docs: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_prev_page: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None

    @classmethod
    def build(cls, docs: List[T], total_docs: int, page: int, limit: int) -> "PaginationResult[T]":
        total_pages = math.ceil(total_docs / limit)
        has_next = page < total_pages
        has_prev = page > 1
        return cls(
            docs=docs,
            total_docs=total_docs,
            total_pages=total_pages,
            current_page=page,
            has_next_page=has_next,
            has_prev_page=has_prev,
            next_page=page + 1 if has_next else None,
            prev_page=page - 1 if has_prev else None,
        )

    def metadata(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"docs"})


class TokenPair(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str
    refresh_token: str


# HTTP request bodies

class RegisterInput(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: str
    password: str


class LoginInput(BaseModel):
    email: str
    password: str


class RefreshInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    refresh_token: Optional[str] = None
