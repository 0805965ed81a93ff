from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .invite import InviteRead
from .permissions import Role, TripPermissions
from .task import ReadinessItemBase


class TripData(BaseModel):
    """Planning payload of a trip.

    Known planning fields are modelled; anything else a client wants to keep
    goes into ``extras`` so it can never clobber document metadata.
    """

    model_config = ConfigDict(extra="forbid")

    adults: List[Dict[str, Any]] = Field(default_factory=list)
    kids: List[Dict[str, Any]] = Field(default_factory=list)
    travel_style: Optional[str] = None
    concerns: List[str] = Field(default_factory=list)
    budget_level: Optional[str] = None
    trip_purpose: Optional[str] = None
    activities: List[Dict[str, Any]] = Field(default_factory=list)
    accommodations: List[Dict[str, Any]] = Field(default_factory=list)
    additional_notes: Optional[str] = None
    dietary_preferences: List[str] = Field(default_factory=list)
    custom_readiness_items: List[ReadinessItemBase] = Field(default_factory=list)
    hidden_readiness_items: List[str] = Field(default_factory=list)
    extras: Dict[str, Any] = Field(default_factory=dict)


class TripDataUpdate(BaseModel):
    """Partial ``TripData``: only the fields that are set are written."""

    model_config = ConfigDict(extra="forbid")

    adults: Optional[List[Dict[str, Any]]] = None
    kids: Optional[List[Dict[str, Any]]] = None
    travel_style: Optional[str] = None
    concerns: Optional[List[str]] = None
    budget_level: Optional[str] = None
    trip_purpose: Optional[str] = None
    activities: Optional[List[Dict[str, Any]]] = None
    accommodations: Optional[List[Dict[str, Any]]] = None
    additional_notes: Optional[str] = None
    dietary_preferences: Optional[List[str]] = None
    custom_readiness_items: Optional[List[ReadinessItemBase]] = None
    hidden_readiness_items: Optional[List[str]] = None
    # Merged key by key into the stored extras
    extras: Optional[Dict[str, Any]] = None


class TripCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=120)
    country: Optional[str] = Field(default=None, max_length=120)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    trip_data: TripData = Field(default_factory=TripData)


class TripUpdate(BaseModel):
    """Fields a collaborator may change. Metadata such as the version is not among them."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=120)
    country: Optional[str] = Field(default=None, max_length=120)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_shared: Optional[bool] = None
    trip_data: Optional[TripDataUpdate] = None


class CollaboratorCreate(BaseModel):
    user_id: str = Field(max_length=320)
    email: str = Field(max_length=320)
    name: str = Field(max_length=255)
    role: Role = "viewer"


class CollaboratorRead(BaseModel):
    user_id: str
    email: str
    name: str
    role: Role
    permissions: TripPermissions
    joined_at: datetime
    last_active: datetime

    model_config = ConfigDict(from_attributes=True)


class TripDocument(BaseModel):
    id: UUID
    owner_id: str
    title: str
    city: Optional[str] = None
    country: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_shared: bool
    version: int
    created_at: datetime
    last_modified: datetime
    modified_by: str
    trip_data: TripData
    collaborators: List[CollaboratorRead] = Field(default_factory=list)
    permissions: Dict[str, TripPermissions] = Field(default_factory=dict)
    invites: List[InviteRead] = Field(default_factory=list)
