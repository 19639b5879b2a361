"""
Eligibility rules for storage reduction.

A video can be reduced only when its content lives in the S3 bucket under
its permlink. The backend is never stored; it is derived from the video's
filename field every time.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

IPFS_SCHEME = 'ipfs://'


class StorageBackend(Enum):
    S3 = 's3'
    IPFS = 'ipfs'
    UNKNOWN = 'unknown'


def classify_backend(manifest: Optional[str]) -> StorageBackend:
    """Classify where a video's content lives from its filename/manifest value.

    'ipfs://...' is IPFS, any other non-empty value is an S3 filename or
    permlink, and a missing value is UNKNOWN.
    """
    if manifest is None:
        return StorageBackend.UNKNOWN
    value = str(manifest).strip()
    if not value:
        return StorageBackend.UNKNOWN
    if value.lower().startswith(IPFS_SCHEME):
        return StorageBackend.IPFS
    return StorageBackend.S3


def video_backend(video) -> StorageBackend:
    """Classify a video, falling back to its permlink when no filename is recorded."""
    manifest = getattr(video, 'filename', None)
    if not manifest or not str(manifest).strip():
        manifest = getattr(video, 'permlink', None)
    return classify_backend(manifest)


def months_ago(now: datetime, months: int) -> datetime:
    """Subtract calendar months, clamping the day to the target month's length."""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class EligibilityCriteria:
    """Selection settings for a batch run."""
    older_than_months: int = 6
    include_optimized: bool = False
    now: Optional[datetime] = None

    def __post_init__(self):
        if self.older_than_months <= 0:
            raise ValueError("older_than_months must be a positive number")

    @property
    def cutoff(self) -> datetime:
        now = _as_utc(self.now) if self.now else datetime.now(timezone.utc)
        return months_ago(now, self.older_than_months)


def is_eligible(video, criteria: EligibilityCriteria) -> Tuple[bool, Optional[str]]:
    """
    Decide whether a video qualifies for reduction.

    Returns:
        (eligible, reason) where reason explains a rejection
    """
    if not getattr(video, 'permlink', None):
        return False, "no permlink"

    backend = video_backend(video)
    if backend != StorageBackend.S3:
        return False, f"storage backend is {backend.value}"

    created = getattr(video, 'created', None)
    if created is None:
        return False, "no creation date"
    if not _as_utc(created) < criteria.cutoff:
        return False, f"newer than {criteria.older_than_months} months"

    if getattr(video, 'optimized_storage', False) and not criteria.include_optimized:
        return False, "already optimized"

    return True, None


def filter_eligible(videos: Iterable, criteria: EligibilityCriteria) -> List:
    """Keep the videos that qualify, preserving input order."""
    eligible = []
    rejected = {}
    for video in videos:
        ok, reason = is_eligible(video, criteria)
        if ok:
            eligible.append(video)
        else:
            rejected[reason] = rejected.get(reason, 0) + 1
    if rejected:
        logger.debug(f"Rejected videos by reason: {rejected}")
    return eligible
