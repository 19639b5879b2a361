"""
Storage reduction - keep only the smallest rendition of each video.

Per video:
1. Find which renditions exist in S3
2. Delete the rendition playlists and segment folders of every larger rendition
3. Rewrite the master playlist so it references only the kept rendition
4. Mark the video optimized in the metadata store

Videos are processed one at a time. Every deletion is idempotent, so an
interrupted run can simply be started again.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from ..database.manager import VideoNotFoundError
from ..database.models import OptimizationMetadata
from .eligibility import StorageBackend, video_backend
from ..storage.hls import (
    Rendition,
    master_playlist_key,
    rendition_playlist_key,
    segment_prefix,
    synthesize_master_playlist,
    PLAYLIST_CONTENT_TYPE,
)
from ..storage.inventory import RenditionAnalysis, RenditionInventory
from ..storage.s3_utils import S3ConnectionError
from ..utils.error_codes import (
    ErrorCode,
    SKIP_REASONS,
    create_error_result,
    create_skipped_result,
    create_success_result,
)
from ..utils.rate_limit import RateLimiter, create_rate_limiter

logger = logging.getLogger(__name__)

# Share of a video's recorded size assumed freed when only the smallest rendition is kept
SAVINGS_RATIO = 0.8

MAX_BATCH_SIZE = 200


class SafetyConfig:
    """Safety and pacing settings for reduction runs (the `safety` config section)"""

    def __init__(
        self,
        dry_run: bool = False,
        require_confirmation: bool = True,
        max_batch_size: int = MAX_BATCH_SIZE,
        batch_pause_seconds: float = 1.0,
        max_operations_per_second: Optional[float] = None,
        upload_master_first: bool = False,
        savings_ratio: float = SAVINGS_RATIO,
        max_consecutive_connection_failures: int = 3,
    ):
        self.dry_run = dry_run
        self.require_confirmation = require_confirmation
        self.max_batch_size = max(1, min(int(max_batch_size), MAX_BATCH_SIZE))
        self.batch_pause_seconds = float(batch_pause_seconds)
        self.max_operations_per_second = max_operations_per_second
        self.upload_master_first = upload_master_first
        self.savings_ratio = float(savings_ratio)
        self.max_consecutive_connection_failures = max(1, int(max_consecutive_connection_failures))

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'SafetyConfig':
        from ..utils.config import as_bool
        max_ops = config_dict.get('max_operations_per_second')
        return cls(
            dry_run=as_bool(config_dict.get('dry_run'), False),
            require_confirmation=as_bool(config_dict.get('require_confirmation'), True),
            max_batch_size=int(config_dict.get('max_batch_size', MAX_BATCH_SIZE)),
            batch_pause_seconds=float(config_dict.get('batch_pause_seconds', 1.0)),
            max_operations_per_second=float(max_ops) if max_ops not in (None, '') else None,
            upload_master_first=as_bool(config_dict.get('upload_master_first'), False),
            savings_ratio=float(config_dict.get('savings_ratio', SAVINGS_RATIO)),
            max_consecutive_connection_failures=int(config_dict.get('max_consecutive_connection_failures', 3)),
        )


class OutcomeStatus(Enum):
    OPTIMIZED = "optimized"
    ANALYZED = "analyzed"  # dry run: would have been optimized
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class VideoOutcome:
    """Result of reducing a single video."""
    video_id: Optional[str]
    permlink: Optional[str]
    label: str = ""
    status: OutcomeStatus = OutcomeStatus.FAILED
    analysis: Optional[RenditionAnalysis] = None
    code: Optional[ErrorCode] = None
    error_message: str = ""
    objects_deleted: int = 0
    delete_errors: int = 0
    estimated_bytes_freed: float = 0.0
    master_rewritten: bool = False
    db_updated: bool = False
    dry_run: bool = False

    @property
    def reason(self) -> Optional[str]:
        """Skip reason ('no permlink', 'no content found', 'already optimized')."""
        if self.status == OutcomeStatus.SKIPPED and self.code is not None:
            return SKIP_REASONS.get(self.code, self.code.value)
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'video_id': self.video_id,
            'permlink': self.permlink,
            'analysis': self.analysis.to_dict() if self.analysis else None,
            'objects_deleted': self.objects_deleted,
            'delete_errors': self.delete_errors,
            'estimated_bytes_freed': self.estimated_bytes_freed,
            'master_rewritten': self.master_rewritten,
            'db_updated': self.db_updated,
            'dry_run': self.dry_run,
        }
        if self.status == OutcomeStatus.SKIPPED:
            return create_skipped_result(self.code, data=data)
        if self.status == OutcomeStatus.FAILED:
            return create_error_result(
                self.code or ErrorCode.UNKNOWN_ERROR,
                self.error_message,
                error_details=data,
            )
        return create_success_result(data=data, message=self.status.value)


@dataclass
class ReductionSummary:
    """Aggregate of a batch run."""
    dry_run: bool = False
    processed: int = 0
    optimized: int = 0
    analyzed: int = 0
    skipped: int = 0
    failed: int = 0
    batches: int = 0
    objects_deleted: int = 0
    delete_errors: int = 0
    db_updated: int = 0
    total_storage_freed: float = 0.0
    errors: List[str] = field(default_factory=list)
    skip_reasons: Dict[str, int] = field(default_factory=dict)
    aborted: bool = False
    abort_reason: Optional[str] = None
    outcomes: List[VideoOutcome] = field(default_factory=list)

    def add(self, outcome: VideoOutcome):
        self.processed += 1
        self.outcomes.append(outcome)
        self.objects_deleted += outcome.objects_deleted
        self.delete_errors += outcome.delete_errors
        if outcome.db_updated:
            self.db_updated += 1

        if outcome.status == OutcomeStatus.OPTIMIZED:
            self.optimized += 1
            self.total_storage_freed += outcome.estimated_bytes_freed
        elif outcome.status == OutcomeStatus.ANALYZED:
            self.analyzed += 1
            self.total_storage_freed += outcome.estimated_bytes_freed
        elif outcome.status == OutcomeStatus.SKIPPED:
            self.skipped += 1
            reason = outcome.reason or 'unknown'
            self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + 1
        else:
            self.failed += 1
            self.errors.append(outcome.error_message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dry_run': self.dry_run,
            'processed': self.processed,
            'optimized': self.optimized,
            'analyzed': self.analyzed,
            'skipped': self.skipped,
            'failed': self.failed,
            'batches': self.batches,
            'objects_deleted': self.objects_deleted,
            'delete_errors': self.delete_errors,
            'db_updated': self.db_updated,
            'total_storage_freed': self.total_storage_freed,
            'errors': list(self.errors),
            'skip_reasons': dict(self.skip_reasons),
            'aborted': self.aborted,
            'abort_reason': self.abort_reason,
        }


def estimate_storage_savings(videos: Iterable, ratio: float = SAVINGS_RATIO) -> Tuple[int, float]:
    """Return (current total bytes, estimated bytes freed) for a set of videos."""
    total = 0
    for video in videos:
        total += video.size or 0
    return total, total * ratio


class ReductionOrchestrator:
    """
    Runs the keep-smallest reduction for single videos and batches.

    Collaborators are injected so tests can substitute in-memory fakes:
    s3_storage needs file_exists, delete_file, delete_prefix, put_text;
    video_manager needs update_video_optimization_flag.
    """

    def __init__(
        self,
        s3_storage,
        video_manager,
        config: Optional[SafetyConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.s3_storage = s3_storage
        self.video_manager = video_manager
        self.config = config or SafetyConfig()
        if rate_limiter is None:
            rate_limiter = create_rate_limiter(self.config.max_operations_per_second)
        self.rate_limiter = rate_limiter
        self._sleep = sleep
        self.inventory = RenditionInventory(s3_storage, before_probe=self._throttle)

    def _throttle(self):
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

    def _upload_master(self, permlink: str, rendition: Rendition) -> bool:
        self._throttle()
        content = synthesize_master_playlist(rendition)
        return self.s3_storage.put_text(master_playlist_key(permlink), content, PLAYLIST_CONTENT_TYPE)

    def slim_video(
        self,
        video,
        dry_run: bool = False,
        optimization_type: str = 'storage-slim-video',
        optimized_by: Optional[str] = None,
    ) -> VideoOutcome:
        """
        Reduce one video to its smallest rendition.

        Args:
            video: Video record (needs id, permlink, owner, size)
            dry_run: Analyse only; no deletes, uploads or database writes
            optimization_type: Type tag for the audit record
            optimized_by: Operator string for the audit record

        Returns:
            VideoOutcome; failures are reported, never raised
        """
        outcome = VideoOutcome(video_id=None, permlink=None, dry_run=dry_run)
        try:
            outcome.video_id = video.id
            outcome.permlink = permlink = getattr(video, 'permlink', None)
            outcome.label = getattr(video, 'label', None) or permlink or video.id

            if not permlink:
                logger.warning(f"Skipping video {outcome.video_id}: No permlink found")
                return self._skip(outcome, ErrorCode.NO_PERMLINK)

            backend = video_backend(video)
            if backend != StorageBackend.S3:
                logger.warning(f"Skipping video {outcome.video_id} ({permlink}): content is on {backend.value}, not S3")
                return self._skip(outcome, ErrorCode.UNSUPPORTED_BACKEND)

            return self._slim(video, outcome, dry_run, optimization_type, optimized_by)
        except S3ConnectionError as e:
            return self._fail(outcome, ErrorCode.S3_CONNECTION_ERROR,
                              f"Failed to optimize video {outcome.video_id} ({outcome.permlink}): {e}")
        except SQLAlchemyError as e:
            return self._fail(outcome, ErrorCode.DATABASE_ERROR,
                              f"Failed to read video {outcome.video_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error optimizing video {outcome.video_id}")
            return self._fail(outcome, ErrorCode.UNKNOWN_ERROR,
                              f"Failed to optimize video {outcome.video_id} ({outcome.permlink}): {e}")

    def _slim(self, video, outcome: VideoOutcome, dry_run: bool,
              optimization_type: str, optimized_by: Optional[str]) -> VideoOutcome:
        permlink = outcome.permlink
        analysis = self.inventory.inspect(permlink)
        outcome.analysis = analysis

        if not analysis.has_content:
            logger.warning(f"Skipping video {outcome.video_id} ({permlink}): No video resolutions found")
            return self._skip(outcome, ErrorCode.NO_CONTENT)

        if not analysis.to_delete:
            logger.info(f"Skipping video {outcome.video_id} ({permlink}): Already optimized "
                        f"(only {analysis.smallest.value} exists)")
            return self._skip(outcome, ErrorCode.ALREADY_OPTIMIZED)

        smallest = analysis.smallest
        outcome.estimated_bytes_freed = (video.size or 0) * self.config.savings_ratio
        logger.info(
            f"Video {permlink}: Found {', '.join(r.value for r in analysis.available)} - "
            f"keeping {smallest.value}, deleting {', '.join(r.value for r in analysis.to_delete)}"
        )

        if dry_run:
            outcome.status = OutcomeStatus.ANALYZED
            return outcome

        if self.config.upload_master_first:
            if not self._upload_master(permlink, smallest):
                return self._fail(outcome, ErrorCode.PLAYLIST_STAGE_FAILED,
                                  f"Failed to stage master playlist for {permlink}; nothing was deleted")
            outcome.master_rewritten = True

        for rendition in analysis.to_delete:
            self._throttle()
            if self.s3_storage.delete_file(rendition_playlist_key(permlink, rendition)):
                outcome.objects_deleted += 1
            else:
                outcome.delete_errors += 1

        for rendition in analysis.to_delete:
            self._throttle()
            result = self.s3_storage.delete_prefix(segment_prefix(permlink, rendition))
            outcome.objects_deleted += result.deleted
            outcome.delete_errors += result.errors

        if not self.config.upload_master_first:
            if not self._upload_master(permlink, smallest):
                logger.error(
                    f"Failed to update master playlist for {permlink} after deleting "
                    f"{outcome.objects_deleted} objects - video may not play correctly"
                )
                return self._fail(outcome, ErrorCode.PLAYLIST_REWRITE_FAILED,
                                  f"Master playlist rewrite failed for {permlink}; "
                                  f"renditions {', '.join(r.value for r in analysis.to_delete)} "
                                  f"were already deleted")
            outcome.master_rewritten = True

        logger.info(f"Updated master playlist {master_playlist_key(permlink)} to reference only {smallest.value}")

        if outcome.delete_errors:
            return self._fail(outcome, ErrorCode.PARTIAL_DELETE,
                              f"{outcome.delete_errors} objects could not be deleted for {permlink}; "
                              f"re-run to finish")

        metadata = OptimizationMetadata(
            optimized_date=datetime.now(timezone.utc),
            optimization_type=optimization_type,
            optimized_by=optimized_by or f"slim-video:{getattr(video, 'owner', '')}/{permlink}",
            storage_reduction=outcome.estimated_bytes_freed,
        )
        try:
            self.video_manager.update_video_optimization_flag(outcome.video_id, metadata)
        except VideoNotFoundError as e:
            return self._fail(outcome, ErrorCode.VIDEO_NOT_FOUND,
                              f"Reduced {permlink} but could not record it: {e}")
        except SQLAlchemyError as e:
            return self._fail(outcome, ErrorCode.DATABASE_ERROR,
                              f"Reduced {permlink} but could not record it: {e}")

        outcome.db_updated = True
        outcome.status = OutcomeStatus.OPTIMIZED
        return outcome

    def _skip(self, outcome: VideoOutcome, code: ErrorCode) -> VideoOutcome:
        outcome.status = OutcomeStatus.SKIPPED
        outcome.code = code
        return outcome

    def _fail(self, outcome: VideoOutcome, code: ErrorCode, message: str) -> VideoOutcome:
        logger.error(message)
        outcome.status = OutcomeStatus.FAILED
        outcome.code = code
        outcome.error_message = message
        return outcome

    def run_batch(
        self,
        videos: List,
        batch_size: int = 25,
        dry_run: bool = False,
        optimization_type: str = 'storage-diet-user',
        optimized_by: Optional[str] = None,
        show_progress: bool = False,
        description: str = "Optimizing",
    ) -> ReductionSummary:
        """
        Reduce a collection of videos in fixed-size chunks.

        A failure on one video never stops the run; it is recorded in the
        summary and the next video is processed. The exception is a bucket
        that stays unreachable: after max_consecutive_connection_failures
        videos in a row fail to connect, the run stops and the summary comes
        back with aborted set and the counts gathered so far.

        Args:
            videos: Eligible videos, processed in the given order
            batch_size: Videos per chunk (capped at max_batch_size)
            dry_run: Analyse only
            optimization_type: Type tag for audit records
            optimized_by: Operator string for audit records
            show_progress: Render a tqdm progress bar
            description: Progress bar label

        Returns:
            ReductionSummary for the videos processed
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive number")
        batch_size = min(batch_size, self.config.max_batch_size)
        summary = ReductionSummary(dry_run=dry_run)
        connection_failures = 0

        with tqdm(total=len(videos), desc=description, unit="video", disable=not show_progress) as pbar:
            for i in range(0, len(videos), batch_size):
                batch = videos[i:i + batch_size]
                summary.batches += 1

                for video in batch:
                    outcome = self.slim_video(
                        video,
                        dry_run=dry_run,
                        optimization_type=optimization_type,
                        optimized_by=optimized_by,
                    )
                    summary.add(outcome)
                    pbar.set_postfix_str(f"[{outcome.reason or outcome.status.value}] {outcome.label}")
                    pbar.update(1)
                    if outcome.code == ErrorCode.S3_CONNECTION_ERROR:
                        connection_failures += 1
                        if connection_failures >= self.config.max_consecutive_connection_failures:
                            summary.aborted = True
                            summary.abort_reason = (
                                f"Aborted after {connection_failures} consecutive connection failures: "
                                f"{outcome.error_message}"
                            )
                            logger.error(summary.abort_reason)
                            break
                    else:
                        connection_failures = 0

                if summary.aborted:
                    break
                if i + batch_size < len(videos) and self.config.batch_pause_seconds:
                    self._sleep(self.config.batch_pause_seconds)

        logger.info(
            f"Batch run finished: {summary.processed} processed, {summary.optimized} optimized, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary
