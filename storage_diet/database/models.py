"""
Video metadata models.

Contains:
- Video: one uploaded media asset and its storage-optimization record
- OptimizationMetadata: the audit sub-record written after a reduction
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class VideoStatus:
    """Lifecycle tags set by the upload/encode pipeline."""
    PUBLISHED = "published"
    DELETED = "deleted"
    UPLOADED = "uploaded"
    ENCODING_IPFS = "encoding_ipfs"
    PROCESSING = "processing"
    FAILED = "failed"
    DRAFT = "draft"


@dataclass
class OptimizationMetadata:
    """Audit record of a completed storage reduction."""
    optimized_date: datetime
    optimization_type: str
    optimized_by: str
    storage_reduction: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'optimized_date': self.optimized_date.isoformat(),
            'optimization_type': self.optimization_type,
            'optimized_by': self.optimized_by,
            'storage_reduction': self.storage_reduction,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OptimizationMetadata':
        optimized_date = data.get('optimized_date')
        if isinstance(optimized_date, str):
            optimized_date = datetime.fromisoformat(optimized_date)
        return cls(
            optimized_date=optimized_date,
            optimization_type=data.get('optimization_type', ''),
            optimized_by=data.get('optimized_by', ''),
            storage_reduction=float(data.get('storage_reduction') or 0),
        )


class Video(Base):
    """
    One uploaded video.

    Attributes:
        id: Opaque identifier from the upload pipeline
        owner: Username of the uploading account
        permlink: URL-safe slug, unique per owner; also the S3 key prefix
        title: Display title
        filename: S3 filename, or "ipfs://<cid>/..." for IPFS uploads
        video_v2: IPFS manifest URL, when one was produced
        size: Total size of the encoded content in bytes
        created: Upload time
        status: Lifecycle tag (see VideoStatus); never changed by reduction

    Storage Optimization:
        optimized_storage: A reduction pass has completed for this video
        optimization: OptimizationMetadata as JSON (absent until reduced)
    """
    __tablename__ = 'videos'

    id = Column(String(64), primary_key=True)
    owner = Column(String(255), nullable=False, index=True)
    permlink = Column(String(255), nullable=True)
    title = Column(String(1024), nullable=True)
    filename = Column(String(1024), nullable=True)
    video_v2 = Column(String(1024), nullable=True)
    size = Column(BigInteger, nullable=True)
    created = Column(DateTime(timezone=True), nullable=True, default=lambda: datetime.now(timezone.utc))
    status = Column(String(32), nullable=False, default=VideoStatus.PUBLISHED)
    optimized_storage = Column(Boolean, nullable=False, default=False)
    optimization = Column(JSON, nullable=True)

    __table_args__ = (
        Index('ix_videos_owner_permlink', 'owner', 'permlink'),
    )

    @property
    def optimization_metadata(self) -> Optional[OptimizationMetadata]:
        if not self.optimization:
            return None
        return OptimizationMetadata.from_dict(self.optimization)

    @property
    def label(self) -> str:
        """Short human label for logs and progress output."""
        return (self.title or self.permlink or self.id or '')[:30]

    def __repr__(self):
        return f"<Video {self.owner}/{self.permlink} status={self.status}>"
