"""
Error code definitions for storage reduction runs.

This module defines standardized error codes and result structures
used by the reduction orchestrator for consistent outcome reporting.
"""

from enum import Enum
from typing import Dict, Any, Optional


class ErrorCode(Enum):
    """Standardized error and skip codes for per-video outcomes."""

    # Transient errors (safe to re-run)
    S3_CONNECTION_ERROR = "s3_connection_error"
    PARTIAL_DELETE = "partial_delete"

    # Degraded state: content deleted but the master playlist was not rewritten
    PLAYLIST_REWRITE_FAILED = "playlist_rewrite_failed"
    PLAYLIST_STAGE_FAILED = "playlist_stage_failed"

    # Structural skips (not errors)
    NO_PERMLINK = "no_permlink"
    NO_CONTENT = "no_content"
    ALREADY_OPTIMIZED = "already_optimized"
    UNSUPPORTED_BACKEND = "unsupported_backend"

    # Metadata store
    DATABASE_ERROR = "database_error"
    VIDEO_NOT_FOUND = "video_not_found"

    UNKNOWN_ERROR = "unknown_error"


# Skip reasons as reported in summaries and logs
SKIP_REASONS = {
    ErrorCode.NO_PERMLINK: "no permlink",
    ErrorCode.NO_CONTENT: "no content found",
    ErrorCode.ALREADY_OPTIMIZED: "already optimized",
    ErrorCode.UNSUPPORTED_BACKEND: "unsupported storage backend",
}


def create_error_result(
    error_code: ErrorCode,
    error_message: str,
    error_details: Optional[Dict[str, Any]] = None,
    permanent: bool = False,
) -> Dict[str, Any]:
    """
    Create a standardized error result dictionary.

    Args:
        error_code: The ErrorCode enum value
        error_message: Human-readable error message
        error_details: Optional additional context
        permanent: Whether re-running cannot fix this failure

    Returns:
        Standardized error result dictionary
    """
    return {
        'status': 'failed',
        'error_code': error_code.value,
        'error_message': error_message,
        'error_details': error_details or {},
        'permanent': permanent,
    }


def create_success_result(
    data: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standardized success result dictionary.

    Args:
        data: Optional outcome-specific data
        message: Optional success message

    Returns:
        Standardized success result dictionary
    """
    result = {
        'status': 'completed',
        'data': data or {}
    }

    if message:
        result['message'] = message

    return result


def create_skipped_result(
    error_code: ErrorCode,
    data: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Create a standardized skipped result dictionary.

    Args:
        error_code: Skip code; its reason text comes from SKIP_REASONS
        data: Optional additional data

    Returns:
        Standardized skipped result dictionary
    """
    return {
        'status': 'skipped',
        'skip_code': error_code.value,
        'reason': SKIP_REASONS.get(error_code, error_code.value),
        'data': data or {}
    }


# Error categories for policy handling
ERROR_CATEGORIES = {
    'transient': [
        ErrorCode.S3_CONNECTION_ERROR,
        ErrorCode.PARTIAL_DELETE,
    ],
    'degraded': [
        ErrorCode.PLAYLIST_REWRITE_FAILED,
    ],
    'skip': [
        ErrorCode.NO_PERMLINK,
        ErrorCode.NO_CONTENT,
        ErrorCode.ALREADY_OPTIMIZED,
        ErrorCode.UNSUPPORTED_BACKEND,
    ],
    'system': [
        ErrorCode.PLAYLIST_STAGE_FAILED,
        ErrorCode.DATABASE_ERROR,
        ErrorCode.VIDEO_NOT_FOUND,
        ErrorCode.UNKNOWN_ERROR,
    ]
}


def get_error_category(error_code: ErrorCode) -> Optional[str]:
    """Get the category for an error code."""
    for category, codes in ERROR_CATEGORIES.items():
        if error_code in codes:
            return category
    return None
