"""
Rendition inventory for HLS videos in S3 storage.

Determines which quality renditions of a video actually exist by probing
each rendition playlist, and splits them into the one to keep (the
smallest) and the ones that can be deleted.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging

from .hls import Rendition, rendition_playlist_key

logger = logging.getLogger(__name__)


@dataclass
class RenditionAnalysis:
    """Result of inspecting a video's renditions."""
    permlink: str
    available: List[Rendition] = field(default_factory=list)

    def __post_init__(self):
        # Quality order is authoritative, never discovery order
        self.available = sorted(set(self.available), key=lambda r: r.rank)

    @property
    def smallest(self) -> Optional[Rendition]:
        """Lowest-quality rendition present, or None when nothing exists."""
        return self.available[0] if self.available else None

    @property
    def to_delete(self) -> List[Rendition]:
        """Every available rendition except the smallest."""
        return self.available[1:]

    @property
    def has_content(self) -> bool:
        return len(self.available) > 0

    @property
    def is_already_optimized(self) -> bool:
        """Exactly one rendition is left."""
        return len(self.available) == 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            'permlink': self.permlink,
            'available': [r.value for r in self.available],
            'smallest': self.smallest.value if self.smallest else None,
            'to_delete': [r.value for r in self.to_delete],
        }


class RenditionInventory:
    """
    Probes S3 storage for the renditions of a video.

    Stateless apart from the storage handle; one instance can inspect any
    number of videos.
    """

    def __init__(self, s3_storage, before_probe: Optional[Callable[[], Any]] = None):
        """
        Args:
            s3_storage: S3Storage (or anything with file_exists)
            before_probe: Called before each existence probe (rate limiting hook)
        """
        self.s3_storage = s3_storage
        self.before_probe = before_probe

    def inspect(self, permlink: str) -> RenditionAnalysis:
        """
        Check which renditions exist for a video.

        Args:
            permlink: Video permlink (the key prefix in the bucket)

        Returns:
            RenditionAnalysis with available renditions in ascending quality

        Raises:
            S3ConnectionError: if a probe fails for reasons other than "not found"
        """
        available = []
        for rendition in Rendition.ascending():
            if self.before_probe is not None:
                self.before_probe()
            if self.s3_storage.file_exists(rendition_playlist_key(permlink, rendition)):
                available.append(rendition)

        analysis = RenditionAnalysis(permlink=permlink, available=available)
        logger.debug(f"Rendition inventory for {permlink}: {analysis.to_dict()}")
        return analysis
