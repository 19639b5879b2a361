from typing import List, Optional, Sequence
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import OptimizationMetadata, Video, VideoStatus
from ..processing.eligibility import StorageBackend, video_backend

logger = logging.getLogger(__name__)


class VideoNotFoundError(LookupError):
    """Raised when a write targets a video id that does not exist"""
    pass


class VideoManager:
    """Metadata store access for videos. All reduction code goes through here."""

    def __init__(self, session: Session):
        self.session = session

    def get_videos_by_owner(self, owner: str, include_optimized: bool = False,
                            statuses: Optional[Sequence[str]] = None) -> List[Video]:
        """Get an account's videos, oldest first.

        Args:
            owner: Account username
            include_optimized: Also return videos already marked optimized
            statuses: Restrict to these statuses (default: anything but deleted)
        """
        query = self.session.query(Video).filter(Video.owner == owner)
        if statuses:
            query = query.filter(Video.status.in_(list(statuses)))
        else:
            query = query.filter(Video.status != VideoStatus.DELETED)
        if not include_optimized:
            query = query.filter(or_(Video.optimized_storage.is_(None), Video.optimized_storage.is_(False)))
        videos = query.order_by(Video.created.asc()).all()
        logger.info(f"Found {len(videos)} videos for {owner}")
        return videos

    def find_video_by_permlink(self, permlink: str, owner: Optional[str] = None) -> Optional[Video]:
        query = self.session.query(Video).filter(Video.permlink == permlink)
        if owner:
            query = query.filter(Video.owner == owner)
        return query.first()

    def update_video_optimization_flag(self, video_id: str, metadata: OptimizationMetadata) -> None:
        """Mark a video optimized and attach its audit record.

        Status is left untouched: a reduced video is still a live video.
        """
        try:
            video = self.session.get(Video, video_id)
            if video is None:
                raise VideoNotFoundError(f"Video {video_id} not found")
            video.optimized_storage = True
            video.optimization = metadata.to_dict()
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error updating optimization flag for {video_id}: {str(e)}")
            self.session.rollback()
            raise
        logger.debug(f"Marked video {video_id} optimized ({metadata.optimization_type})")

    def get_video_storage_type(self, video: Video) -> StorageBackend:
        return video_backend(video)
