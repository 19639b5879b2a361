#!/usr/bin/env python3
"""
storage-diet command line
=========================

Reduce S3-hosted HLS videos to their smallest rendition, repair broken
playlists, and query IPFS pin status.

Usage:
    # Analyse one video without changing anything
    storage-diet slim-video "https://3speak.tv/watch?v=alice/abc123" --dry-run

    # Reduce one video
    storage-diet slim-video alice/abc123 --no-confirm

    # Reduce every S3 video of an account older than 12 months
    storage-diet slim-user --username alice --older-than-months 12 --no-confirm

    # Rebuild playlists from the segments still in the bucket
    storage-diet repair-playlists abc123

    # Pin status
    storage-diet ipfs-check-pin QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG
    storage-diet cluster-status
    storage-diet cluster-pins
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import yaml

from .database import DatabaseConnectionError, VideoManager, create_session_manager
from .processing.eligibility import (
    EligibilityCriteria,
    StorageBackend,
    filter_eligible,
    video_backend,
)
from .processing.reduction import (
    OutcomeStatus,
    ReductionOrchestrator,
    SafetyConfig,
    estimate_storage_savings,
)
from .processing.repair import PlaylistRepairer
from .services.ipfs import IpfsConfig, IpfsService, IpfsServiceError
from .storage import S3ConnectionError, create_s3_storage
from .utils.config import get_section, load_config
from .utils.formatting import calculate_cost_savings, format_bytes, format_megabytes
from .utils.logger import DEFAULT_LOG_DIR, setup_worker_logger
from .utils.rate_limit import create_rate_limiter

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5


def parse_video_url(url: str) -> Tuple[Optional[str], Optional[str]]:
    """Split a watch URL or 'user/permlink' into (username, permlink).

    Returns (None, None) when the input is not recognised.
    """
    url = (url or '').strip()
    if not url:
        return None, None

    if 'http' not in url and '/' in url:
        parts = url.split('/')
        if len(parts) == 2 and all(parts):
            return parts[0], parts[1]
        return None, None

    parsed = urlparse(url)
    video_param = parse_qs(parsed.query).get('v')
    if not video_param:
        return None, None
    parts = video_param[0].split('/')
    if len(parts) != 2 or not all(parts):
        return None, None
    return parts[0], parts[1]


def _print_banner(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def _print_cost(label: str, bytes_freed: float):
    gb, tb = format_bytes(bytes_freed)
    cost = calculate_cost_savings(bytes_freed)
    print(f"{label}: {gb} GB ({tb} TB)")
    print(f"Cost savings: ${cost['daily_cost']:.4f}/day, "
          f"${cost['monthly_cost']:.2f}/month, ${cost['annual_cost']:.2f}/year")


def _confirmation_required(safety: SafetyConfig, args) -> bool:
    if safety.require_confirmation and not args.no_confirm:
        print("\nConfirmation required. Re-run with --no-confirm to execute this optimization.")
        return True
    return False


def _build_orchestrator(config, session) -> ReductionOrchestrator:
    safety = SafetyConfig.from_dict(get_section(config, 'safety'))
    return ReductionOrchestrator(
        create_s3_storage(config),
        VideoManager(session),
        config=safety,
        rate_limiter=create_rate_limiter(safety.max_operations_per_second),
    )


def slim_video(args, config) -> int:
    """Reduce a single video identified by URL or user/permlink."""
    username, permlink = parse_video_url(args.url)
    if not username or not permlink:
        logger.error(f"Invalid video URL: {args.url}. Expected https://3speak.tv/watch?v=user/permlink or user/permlink")
        return 1

    session_manager = create_session_manager(get_section(config, 'database'))
    try:
        with session_manager.session() as session:
            video = VideoManager(session).find_video_by_permlink(permlink, owner=username)
            if video is None:
                logger.error(f"Video not found: {username}/{permlink}")
                return 1

            _print_banner("SLIM SINGLE VIDEO")
            print(f"Video:   {video.title or video.permlink}")
            print(f"ID:      {video.id}")
            print(f"Owner:   {video.owner}")
            print(f"Status:  {video.status}")
            print(f"Size:    {format_megabytes(video.size) if video.size else 'Unknown'}")

            backend = video_backend(video)
            print(f"Storage: {backend.value.upper()}")
            if backend != StorageBackend.S3:
                print("Video is not stored in S3 - nothing to optimize with this tool.")
                return 0

            orchestrator = _build_orchestrator(config, session)
            dry_run = args.dry_run or orchestrator.config.dry_run
            analysis = orchestrator.slim_video(video, dry_run=True)
            if analysis.status == OutcomeStatus.FAILED:
                return 1
            if analysis.status == OutcomeStatus.SKIPPED:
                print(f"Skipped: {analysis.reason}")
                return 0

            print(f"Available resolutions: {', '.join(r.value for r in analysis.analysis.available)}")
            print(f"Keeping:  {analysis.analysis.smallest.value}")
            print(f"Deleting: {', '.join(r.value for r in analysis.analysis.to_delete)}")
            print(f"Estimated storage savings: {format_megabytes(analysis.estimated_bytes_freed)} "
                  f"(~{orchestrator.config.savings_ratio:.0%} reduction)")

            if dry_run:
                print("\nDry run completed. No changes were made.")
                print("Re-run without --dry-run (and with --no-confirm) to execute the optimization.")
                return 0
            if _confirmation_required(orchestrator.config, args):
                return 0

            outcome = orchestrator.slim_video(
                video,
                optimization_type='storage-slim-video',
                optimized_by=f"slim-video:{username}/{permlink}",
            )
            if outcome.status != OutcomeStatus.OPTIMIZED:
                print(f"\nOptimization failed: {outcome.error_message}")
                return 1

            print("\nVideo optimization completed successfully!")
            print(f"Deleted objects: {outcome.objects_deleted}")
            print(f"Estimated storage freed: {format_megabytes(outcome.estimated_bytes_freed)}")
            print(f"Master playlist now references only {outcome.analysis.smallest.value}")
            return 0
    finally:
        session_manager.dispose()


def slim_user(args, config) -> int:
    """Reduce every eligible video of one account."""
    username = (args.username or '').strip()
    if not username:
        logger.error("The --username option is required for slim-user")
        return 1
    if args.older_than_months <= 0:
        logger.error("Invalid --older-than-months value. Please provide a positive number.")
        return 1
    if args.batch_size <= 0:
        logger.error("Invalid batch size specified. Please provide a positive number.")
        return 1

    criteria = EligibilityCriteria(
        older_than_months=args.older_than_months,
        include_optimized=args.include_optimized,
    )

    session_manager = create_session_manager(get_section(config, 'database'))
    try:
        with session_manager.session() as session:
            orchestrator = _build_orchestrator(config, session)
            safety = orchestrator.config
            dry_run = args.dry_run or safety.dry_run
            batch_size = min(args.batch_size, safety.max_batch_size)

            _print_banner("SLIM USER ANALYSIS")
            print(f"Target account: {username}")
            print(f"Age threshold: videos older than {criteria.older_than_months} months "
                  f"(before {criteria.cutoff.date().isoformat()})")
            print(f"Include already optimized: {criteria.include_optimized}")

            videos = orchestrator.video_manager.get_videos_by_owner(
                username, include_optimized=criteria.include_optimized)
            if not videos:
                print(f"No videos found for account {username}")
                return 0

            eligible = filter_eligible(videos, criteria)
            if not eligible:
                print(f"No eligible videos found for {username} older than {criteria.older_than_months} months")
                return 0

            current, estimated = estimate_storage_savings(eligible, safety.savings_ratio)
            gb, tb = format_bytes(current)
            print(f"Eligible videos found: {len(eligible)}")
            print(f"Current storage: {gb} GB ({tb} TB)")
            _print_cost(f"Estimated savings (~{safety.savings_ratio:.0%} reduction)", estimated)

            print("Sample eligible videos:")
            for i, video in enumerate(eligible[:SAMPLE_SIZE], 1):
                title = video.title or video.permlink or video.id
                print(f"  {i}. {title} | {video.created.date().isoformat()} | {format_megabytes(video.size or 0)}")

            if not dry_run and _confirmation_required(safety, args):
                return 0

            summary = orchestrator.run_batch(
                eligible,
                batch_size=batch_size,
                dry_run=dry_run,
                optimization_type='storage-diet-user',
                optimized_by=f"slim-user:{username}:{criteria.older_than_months}months",
                show_progress=True,
                description=f"{'Analyzing' if dry_run else 'Optimizing'} {username}",
            )

            if summary.aborted:
                title = "SLIM USER ABORTED"
            else:
                title = "SLIM USER DRY RUN" if dry_run else "SLIM USER COMPLETED"
            _print_banner(title)
            print(f"Account: {username}")
            print(f"Age threshold: {criteria.older_than_months}+ months")
            print(f"Videos processed: {summary.processed}")
            print(f"Batches: {summary.batches}")
            if dry_run:
                print(f"Would optimize: {summary.analyzed}")
            else:
                print(f"Optimized: {summary.optimized}")
                print(f"S3 objects deleted: {summary.objects_deleted} ({summary.delete_errors} delete errors)")
                print(f"Database records updated: {summary.db_updated}")
            for reason, count in sorted(summary.skip_reasons.items()):
                print(f"Skipped ({reason}): {count}")
            _print_cost("Storage that would be freed" if dry_run else "Storage freed", summary.total_storage_freed)
            print(f"Errors: {len(summary.errors)}")
            for error in summary.errors:
                print(f"  - {error}")
            if summary.aborted:
                print(f"\n{summary.abort_reason}")
                print("Videos after this point were not processed. Re-run once the bucket is reachable.")
                return 1
            if dry_run:
                print("\nDry run completed. No changes were made.")
            return 0
    finally:
        session_manager.dispose()


def repair_playlists(args, config) -> int:
    """Rebuild the playlists of one video from its stored segments."""
    safety = SafetyConfig.from_dict(get_section(config, 'safety'))
    repairer = PlaylistRepairer(
        create_s3_storage(config),
        rate_limiter=create_rate_limiter(safety.max_operations_per_second),
    )
    result = repairer.repair(args.permlink, dry_run=args.dry_run)

    _print_banner(f"REPAIR PLAYLISTS: {args.permlink}")
    for rendition, count in result.segment_counts.items():
        print(f"{rendition.value}: {count} segments")
    print(result.message)
    if args.dry_run:
        return 0 if result.renditions else 1
    return 0 if result.success else 1


def _ipfs_service(config) -> IpfsService:
    return IpfsService(IpfsConfig.from_dict(get_section(config, 'ipfs'), get_section(config, 'cluster')))


def ipfs_check_pin(args, config) -> int:
    service = _ipfs_service(config)
    ipfs_hash = IpfsService.extract_hash_from_filename(args.hash) or args.hash
    pinned = service.is_pinned(ipfs_hash)
    print(f"{ipfs_hash}: {'pinned' if pinned else 'not pinned'}")
    return 0


def cluster_status(args, config) -> int:
    service = _ipfs_service(config)
    status = service.get_cluster_status()
    metrics = service.get_cluster_metrics()

    _print_banner("IPFS CLUSTER STATUS")
    print(f"Peer name: {status['peername']}")
    print(f"Reachable: {status['health']['reachable']}")
    print(f"Trusted peers: {len(status['trusted_peers'])}")
    print(f"Cluster status: {metrics['status']}")
    print(f"Total pins: {metrics['total_pins']}")
    print(f"Peers: {len(metrics['peers'])}")
    for peer in metrics['peers']:
        print(f"  - {peer['peername']} (ipfs {peer['ipfs']}, version {peer['version']})")
    return 0 if status['health']['reachable'] else 1


def cluster_pins(args, config) -> int:
    pins = _ipfs_service(config).list_cluster_pins()
    for cid in pins[:args.limit] if args.limit else pins:
        print(cid)
    print(f"Total cluster pins: {len(pins)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storage-diet", description="Storage reduction for HLS videos in S3")
    parser.add_argument("--config", type=Path, help="Path to config.yaml (default: config/config.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    video_parser = subparsers.add_parser("slim-video", help="Keep only the smallest rendition of one video")
    video_parser.add_argument("url", help="Watch URL (https://3speak.tv/watch?v=user/permlink) or user/permlink")
    video_parser.add_argument("--dry-run", action="store_true", help="Analyse only, change nothing")
    video_parser.add_argument("--no-confirm", action="store_true", help="Execute without the confirmation gate")

    user_parser = subparsers.add_parser("slim-user", help="Optimize all old S3 videos of an account")
    user_parser.add_argument("--username", "-u", required=True, help="Account username")
    user_parser.add_argument("--older-than-months", type=int, default=6, help="Age threshold in months (default: 6)")
    user_parser.add_argument("--batch-size", type=int, default=25, help="Videos per batch, max 200 (default: 25)")
    user_parser.add_argument("--dry-run", action="store_true", help="Analyse only, change nothing")
    user_parser.add_argument("--no-confirm", action="store_true", help="Execute without the confirmation gate")
    user_parser.add_argument("--include-optimized", action="store_true", help="Also process videos already marked optimized")

    repair_parser = subparsers.add_parser("repair-playlists", help="Rebuild playlists from stored segments")
    repair_parser.add_argument("permlink", help="Video permlink")
    repair_parser.add_argument("--dry-run", action="store_true", help="Count segments only")

    pin_parser = subparsers.add_parser("ipfs-check-pin", help="Check whether a hash is pinned on the IPFS node")
    pin_parser.add_argument("hash", help="CID or ipfs:// filename")

    subparsers.add_parser("cluster-status", help="Show IPFS cluster peer and pin status")

    pins_parser = subparsers.add_parser("cluster-pins", help="List pins tracked by the IPFS cluster")
    pins_parser.add_argument("--limit", type=int, default=0, help="Print at most this many CIDs (default: all)")

    return parser


COMMANDS = {
    "slim-video": slim_video,
    "slim-user": slim_user,
    "repair-playlists": repair_playlists,
    "ipfs-check-pin": ipfs_check_pin,
    "cluster-status": cluster_status,
    "cluster-pins": cluster_pins,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    level = logging.DEBUG if args.verbose else logging.INFO
    try:
        config = load_config(args.config)
    except (OSError, yaml.YAMLError) as e:
        setup_worker_logger('main', log_dir=DEFAULT_LOG_DIR, level=level)
        logger.error(f"Could not load configuration: {e}")
        return 1

    base_path = get_section(config, 'logging').get('base_path')
    setup_worker_logger('main', log_dir=Path(base_path) if base_path else DEFAULT_LOG_DIR, level=level)

    try:
        return COMMANDS[args.command](args, config)
    except (S3ConnectionError, DatabaseConnectionError, IpfsServiceError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
