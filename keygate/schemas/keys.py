"""
Key-related Pydantic schemas for request/response validation.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from keygate.core.durations import DurationUnit, to_duration
from keygate.services.gateway import RedemptionOutcome
from keygate.services.key_store import KeyRecord


class DurationInput(BaseModel):
    """A whole number of days (default) or hours."""
    duration: int = Field(30, ge=1, le=36500)
    unit: DurationUnit = DurationUnit.DAYS

    def to_timedelta(self) -> timedelta:
        return to_duration(self.duration, self.unit)


class KeyCreate(DurationInput):
    """Schema for issuing a single key."""
    label: Optional[str] = None


class KeyBulkCreate(KeyCreate):
    """Schema for issuing several keys at once (clamped to the bulk limit)."""
    count: int = Field(..., ge=1)


class KeyExtend(DurationInput):
    """Extra lifetime to add to a key."""
    duration: int = Field(..., ge=1, le=36500)


class KeyLabelUpdate(BaseModel):
    label: Optional[str] = None


class KeyIdList(BaseModel):
    key_ids: List[str] = Field(..., min_length=1, max_length=500)


class KeyResponse(BaseModel):
    """A key as shown to administrators."""
    id: str
    label: str
    device_binding: Optional[str]
    created_at: datetime
    expires_at: datetime
    expired: bool
    linked: bool

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: KeyRecord, now: datetime) -> "KeyResponse":
        return cls(
            id=record.id,
            label=record.label,
            device_binding=record.device_binding,
            created_at=record.created_at,
            expires_at=record.expires_at,
            expired=record.is_expired(now),
            linked=record.is_bound,
        )


class KeyListResponse(BaseModel):
    keys: List[KeyResponse]
    total: int


class KeyStatsResponse(BaseModel):
    total: int
    active: int
    expired: int
    linked: int


class BulkIssueResponse(BaseModel):
    keys: List[KeyResponse]
    requested: int
    effective: int
    issued: int
    error: Optional[str] = None


class BulkResetResponse(BaseModel):
    reset: List[str]
    missing: List[str]
    error: Optional[str] = None


class DeletedCountResponse(BaseModel):
    deleted: int


class RedemptionResponse(BaseModel):
    """Redemption outcome returned to clients."""
    outcome: RedemptionOutcome
    authorized: bool
    message: str
    expires_at: Optional[datetime] = None


class PublicKeyResponse(BaseModel):
    key: str
    expires_at: datetime
    hours: int
