"""
Database initialization module.
All video metadata access should go through the VideoManager class.
"""

from .session import SessionManager, DatabaseConfig, DatabaseConnectionError, create_session_manager
from .models import Base, Video, VideoStatus, OptimizationMetadata
from .manager import VideoManager, VideoNotFoundError

__all__ = [
    'SessionManager',
    'DatabaseConfig',
    'DatabaseConnectionError',
    'create_session_manager',
    'Base',
    'Video',
    'VideoStatus',
    'OptimizationMetadata',
    'VideoManager',
    'VideoNotFoundError',
]
