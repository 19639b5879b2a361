"""
Playlist repair for videos whose playlists were lost or overwritten.

Rebuilds each rendition playlist from the segments actually present in the
bucket and writes a master playlist that lists every rendition with
segments. Segment objects themselves are never touched.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from ..storage.hls import (
    PLAYLIST_CONTENT_TYPE,
    Rendition,
    master_playlist_key,
    rendition_playlist_key,
    segment_prefix,
    sort_segment_filenames,
    synthesize_rendition_playlist,
    synthesize_variant_playlist,
)
from ..utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class RepairResult:
    permlink: str
    dry_run: bool = False
    segment_counts: Dict[Rendition, int] = field(default_factory=dict)
    uploaded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def renditions(self) -> List[Rendition]:
        """Renditions that have at least one segment, smallest first."""
        return sorted((r for r, n in self.segment_counts.items() if n), key=lambda r: r.rank)

    @property
    def success(self) -> bool:
        return bool(self.renditions) and not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'permlink': self.permlink,
            'dry_run': self.dry_run,
            'segments': {r.value: n for r, n in self.segment_counts.items()},
            'uploaded': list(self.uploaded),
            'failed': list(self.failed),
            'success': self.success,
            'message': self.message,
        }


class PlaylistRepairer:
    """Regenerates rendition and master playlists from stored segments."""

    def __init__(self, s3_storage, rate_limiter: Optional[RateLimiter] = None):
        self.s3_storage = s3_storage
        self.rate_limiter = rate_limiter

    def _throttle(self):
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

    def _upload(self, key: str, content: str, result: RepairResult):
        self._throttle()
        if self.s3_storage.put_text(key, content, PLAYLIST_CONTENT_TYPE):
            result.uploaded.append(key)
        else:
            result.failed.append(key)

    def repair(self, permlink: str, dry_run: bool = False) -> RepairResult:
        """
        Rebuild the playlists of one video.

        Args:
            permlink: Video folder in the bucket
            dry_run: Only count segments; upload nothing

        Returns:
            RepairResult with per-rendition segment counts and uploaded keys

        Raises:
            S3ConnectionError: if a segment listing fails
        """
        result = RepairResult(permlink=permlink, dry_run=dry_run)
        segments_by_rendition = {}

        for rendition in Rendition.ascending():
            self._throttle()
            prefix = segment_prefix(permlink, rendition)
            segments = sort_segment_filenames(self.s3_storage.list_all_files(prefix))
            result.segment_counts[rendition] = len(segments)
            if segments:
                segments_by_rendition[rendition] = segments
                logger.info(f"Found {len(segments)} {rendition.value} segments for {permlink}")

        if not segments_by_rendition:
            result.message = "No segments found - cannot restore video"
            logger.warning(f"{permlink}: {result.message}")
            return result

        if dry_run:
            result.message = (
                f"Would rebuild playlists for {', '.join(r.value for r in result.renditions)}"
            )
            logger.info(f"{permlink}: {result.message}")
            return result

        for rendition, segments in segments_by_rendition.items():
            playlist = synthesize_rendition_playlist(segments, f"{rendition.value}/")
            self._upload(rendition_playlist_key(permlink, rendition), playlist, result)

        master = synthesize_variant_playlist(segments_by_rendition.keys())
        self._upload(master_playlist_key(permlink), master, result)

        if result.failed:
            result.message = f"Failed to upload {', '.join(result.failed)}"
            logger.error(f"{permlink}: {result.message}")
        else:
            result.message = f"Restored playlists for {', '.join(r.value for r in result.renditions)}"
            logger.info(f"{permlink}: {result.message}")
        return result
