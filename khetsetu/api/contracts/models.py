"""Pydantic wire models for the KhetSetu REST API.

All payloads use camelCase keys on the wire; Python code uses snake_case
attribute names. Every response is wrapped in :class:`ApiEnvelope`.
"""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")

UserRole = Literal["farmer", "advisor", "admin"]
SoilType = Literal["clay", "sandy", "loamy", "silt", "peat", "chalk"]
Language = Literal["en", "hi"]


class WireModel(BaseModel):
    """Base model mapping snake_case fields to camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire aliases, omitting unset optional values."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Coordinates(WireModel):
    latitude: float
    longitude: float


class FarmLocation(WireModel):
    state: str | None = None
    district: str | None = None
    village: str | None = None
    coordinates: Coordinates | None = None


class UserProfile(WireModel):
    """Farm attributes attached to a user, as stored by the backend.

    Read-side shape: fields are optional and unbounded so that records
    written under older or looser rules still parse. Input rules live on
    the backend request models.
    """

    farm_size: float | None = None
    location: FarmLocation | None = None
    soil_type: SoilType | None = None
    farming_experience: int | None = None
    primary_crops: list[str] = Field(default_factory=list)
    preferred_language: Language = "en"
    avatar: str | None = None


class NotificationPreferences(WireModel):
    email: bool = True
    sms: bool = False
    push: bool = True
    weather_alerts: bool = True
    pest_alerts: bool = True
    market_updates: bool = False


class UnitPreferences(WireModel):
    area: Literal["acres", "hectares"] = "acres"
    temperature: Literal["celsius", "fahrenheit"] = "celsius"
    currency: Literal["INR", "USD"] = "INR"


class UserPreferences(WireModel):
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    units: UnitPreferences = Field(default_factory=UnitPreferences)


class User(WireModel):
    """User record as returned by the backend; unknown keys are preserved."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str = Field(alias="_id")
    email: str
    name: str
    phone: str | None = None
    role: UserRole = "farmer"
    profile: UserProfile = Field(default_factory=UserProfile)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    is_email_verified: bool = False
    is_phone_verified: bool = False
    is_active: bool = True
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class FieldErrorItem(WireModel):
    """One request validation failure."""

    msg: str
    param: str = ""


class ApiEnvelope(WireModel, Generic[DataT]):
    """Response envelope shared by every endpoint."""

    success: bool
    message: str = ""
    data: DataT | None = None
    error: str | None = None
    errors: list[FieldErrorItem] | None = None


class AuthPayload(WireModel):
    """Session payload returned by login and register."""

    user: User
    token: str
    refresh_token: str


class TokenPayload(WireModel):
    """Rotated token pair returned by refresh."""

    token: str
    refresh_token: str


class UserPayload(WireModel):
    user: User


class LoginCredentials(WireModel):
    email: str
    password: str


class RegisterData(WireModel):
    email: str
    password: str
    name: str
    phone: str | None = None
    role: UserRole | None = None
    profile: UserProfile | None = None


class PasswordChange(WireModel):
    current_password: str
    new_password: str


class ApiErrorResponse(WireModel):
    """Stable error envelope for API responses."""

    success: Literal[False] = False
    message: str = Field(description="Human-readable error message")
    error: str = Field(description="Machine-readable error code")
    errors: list[FieldErrorItem] | None = None
