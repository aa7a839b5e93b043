from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Status(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


class AuditAction(str, Enum):
    DELETE_USER = "delete_user"
    DELETE_RIDE = "delete_ride"
    BLOCK_USER = "block_user"
    UNBLOCK_USER = "unblock_user"


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    name: Optional[str] = None
    gender: Optional[Gender] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Role = Role.USER
    status: Status = Status.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("gender", mode="before")
    @classmethod
    def blank_gender_is_missing(cls, value):
        return value or None

    @field_validator("role", "status", mode="before")
    @classmethod
    def null_is_default(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_blocked(self) -> bool:
        return self.status == Status.BLOCKED


class RidePoster(BaseModel):
    """Poster fields joined onto a candidate ride."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    gender: Optional[Gender] = None


class Ride(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[Union[int, str]] = None
    user_id: Optional[str] = None
    from_: str = Field(alias="from")
    to: str
    time: datetime
    gender: Optional[Gender] = None
    created_at: Optional[datetime] = None
    profiles: Optional[RidePoster] = None

    def to_row(self) -> dict:
        """Serialize with backend column names."""
        return self.model_dump(mode="json", by_alias=True)


class CacheSnapshot(BaseModel):
    rides: Optional[List[Ride]] = None
    profile: Optional[Profile] = None

    @property
    def is_complete(self) -> bool:
        return self.rides is not None and self.profile is not None


class AuditProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = None
    user_id: Optional[str] = None
    target_user_id: Optional[str] = None
    action: AuditAction
    details: str = ""
    created_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    profiles: Optional[AuditProfile] = None
    target_profiles: Optional[AuditProfile] = None


class AvatarUpload(BaseModel):
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else "bin"
