from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from housekeeper.housekeeping.expiration import (
    EXPIRY_ASSUMED,
    EXPIRY_EXPLICIT,
    Job,
    is_expired,
    resolve_expiry,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


@pytest.mark.parametrize(
    "age_days, expected",
    [(8, True), (30, True), (6, False), (1, False), (7, False)],
)
def test_explicit_expiry_must_be_more_than_seven_days_old(age_days, expected):
    job = Job.model_validate({"id": 1, "artifacts_expire_at": _iso(NOW - timedelta(days=age_days))})

    assert is_expired(job, NOW) is expected


def test_boundary_one_second_past_cutoff_is_expired():
    job = Job(id=1, artifacts_expire_at=NOW - timedelta(days=7, seconds=1))

    assert is_expired(job, NOW) is True


def test_created_at_fallback_assumes_seven_day_lifetime():
    stale = Job.model_validate({"id": 1, "created_at": _iso(NOW - timedelta(days=15))})
    recent = Job.model_validate({"id": 2, "created_at": _iso(NOW - timedelta(days=10))})

    assert resolve_expiry(stale) == (NOW - timedelta(days=8), EXPIRY_ASSUMED)
    assert is_expired(stale, NOW) is True
    assert resolve_expiry(recent) == (NOW - timedelta(days=3), EXPIRY_ASSUMED)
    assert is_expired(recent, NOW) is False


def test_created_at_fallback_boundary_is_not_expired():
    job = Job(id=1, created_at=NOW - timedelta(days=14))

    assert is_expired(job, NOW) is False


def test_explicit_expiry_wins_over_created_at():
    job = Job(
        id=1,
        created_at=NOW - timedelta(days=365),
        artifacts_expire_at=NOW + timedelta(days=30),
    )

    assert resolve_expiry(job) == (NOW + timedelta(days=30), EXPIRY_EXPLICIT)
    assert is_expired(job, NOW) is False


@pytest.mark.parametrize("payload", [{"id": 1}, {"id": 1, "created_at": None, "artifacts_expire_at": ""}])
def test_job_without_timestamps_is_never_expired(payload):
    job = Job.model_validate(payload)

    assert resolve_expiry(job) == (None, None)
    assert is_expired(job, NOW + timedelta(days=10_000)) is False


def test_naive_timestamps_are_treated_as_utc():
    job = Job.model_validate({"id": 1, "artifacts_expire_at": "2026-01-01T12:00:00"})

    assert job.artifacts_expire_at == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert is_expired(job, NOW.replace(tzinfo=None)) is True


def test_policy_windows_are_configurable():
    job = Job(id=1, created_at=NOW - timedelta(days=2))

    assert is_expired(job, NOW, grace_days=0, assumed_lifetime_days=1) is True
    assert is_expired(job, NOW, grace_days=1, assumed_lifetime_days=1) is False


def test_unknown_job_fields_are_ignored_and_bad_timestamps_rejected():
    job = Job.model_validate({"id": 5, "status": "success", "stage": "build", "created_at": _iso(NOW)})
    assert job.id == 5

    with pytest.raises(ValidationError):
        Job.model_validate({"id": 6, "created_at": "not-a-date"})
