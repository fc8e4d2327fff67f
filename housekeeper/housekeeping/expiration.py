# housekeeper/housekeeping/expiration.py
"""
Artifact expiration policy.

A job's artifacts are deleted only once their expiry lies strictly more than
`grace_days` before the reference time. Jobs without artifacts_expire_at fall
back to created_at + `assumed_lifetime_days`; jobs with neither timestamp are
never deleted. Nothing in here reads the clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_GRACE_DAYS = 7
DEFAULT_ASSUMED_LIFETIME_DAYS = 7

EXPIRY_EXPLICIT = "explicit"
EXPIRY_ASSUMED = "assumed"


class Job(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    created_at: Optional[datetime] = None
    artifacts_expire_at: Optional[datetime] = None

    @field_validator("created_at", "artifacts_expire_at", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("created_at", "artifacts_expire_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


def resolve_expiry(
    job: Job,
    assumed_lifetime_days: int = DEFAULT_ASSUMED_LIFETIME_DAYS,
) -> Tuple[Optional[datetime], Optional[str]]:
    """Return (effective expiry, EXPIRY_EXPLICIT | EXPIRY_ASSUMED), or (None, None) when undecidable."""
    if job.artifacts_expire_at is not None:
        return job.artifacts_expire_at, EXPIRY_EXPLICIT
    if job.created_at is not None:
        return job.created_at + timedelta(days=assumed_lifetime_days), EXPIRY_ASSUMED
    return None, None


def is_expired(
    job: Job,
    reference_time: datetime,
    *,
    grace_days: int = DEFAULT_GRACE_DAYS,
    assumed_lifetime_days: int = DEFAULT_ASSUMED_LIFETIME_DAYS,
) -> bool:
    if reference_time.tzinfo is None:
        reference_time = reference_time.replace(tzinfo=timezone.utc)
    expires_at, _ = resolve_expiry(job, assumed_lifetime_days)
    if expires_at is None:
        return False
    # Strict: an expiry exactly on the cutoff is kept
    return expires_at < reference_time - timedelta(days=grace_days)
