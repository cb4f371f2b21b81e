"""Backend-side record schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from promptsync.services.datetime_service import ensure_aware


class RemoteFileContext(BaseModel):
    """Editor context stored alongside a remote record."""

    file_extension: str
    language: str


class RemoteTemplateVariable(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "text"
    description: str | None = None
    default_value: str | None = None


class RemoteVersion(BaseModel):
    """One entry of a record's version history."""

    model_config = ConfigDict(frozen=True)

    version_id: str
    timestamp: datetime
    device_id: str = ""
    device_name: str = ""
    title: str = ""
    content: str = ""
    category: str = ""
    description: str | None = None
    change_reason: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class RemoteMetadata(BaseModel):
    """Bookkeeping fields mirrored from the local record."""

    model_config = ConfigDict(frozen=True)

    created: datetime
    modified: datetime
    usage_count: int = 0
    last_used: datetime | None = None
    context: RemoteFileContext | None = None
    versions: list[RemoteVersion] = Field(default_factory=list)

    @field_validator("created", "modified", "last_used")
    @classmethod
    def _aware(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v) if v is not None else None

    @field_validator("versions", mode="before")
    @classmethod
    def _null_versions(cls, v: object) -> object:
        return [] if v is None else v


class Attribution(BaseModel):
    """Which device last wrote a remote record."""

    model_config = ConfigDict(frozen=True)

    device_id: str | None = None
    device_name: str | None = None


class RemoteRecord(BaseModel):
    """A prompt as returned by the backend.

    ``owner_local_id`` is absent for records created directly against the
    backend (e.g. from the web companion). ``deleted_at`` marks a soft delete.
    """

    model_config = ConfigDict(frozen=True)

    remote_id: str
    owner_local_id: str | None = None
    title: str
    content: str
    description: str | None = None
    category: str = ""
    prompt_order: int | None = None
    category_order: int | None = None
    content_fingerprint: str
    version: int = Field(ge=0)
    variables: list[RemoteTemplateVariable] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None
    metadata: RemoteMetadata
    attribution: Attribution = Field(default_factory=Attribution)

    @field_validator("created_at", "updated_at", "deleted_at")
    @classmethod
    def _aware(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v) if v is not None else None

    @field_validator("owner_local_id", mode="before")
    @classmethod
    def _blank_owner(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("variables", mode="before")
    @classmethod
    def _null_variables(cls, v: object) -> object:
        return [] if v is None else v

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class UploadResult(BaseModel):
    """Backend response to a successful upload."""

    remote_id: str
    version: int


class CapacityQuota(BaseModel):
    """Per-user storage quota as reported by the backend."""

    prompt_count: int
    prompt_limit: int
    storage_bytes: int
    storage_limit: int
    percentage_used: float = 0.0
