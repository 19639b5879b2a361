"""Database session management."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


class DatabaseConnectionError(Exception):
    """Raised when the metadata database cannot be reached at startup"""
    pass


class DatabaseConfig:
    """Connection settings for the metadata database"""

    def __init__(
        self,
        url: Optional[str] = None,
        host: str = 'localhost',
        port: int = 5432,
        user: Optional[str] = None,
        password: Optional[str] = None,
        database: Optional[str] = None,
        pool_size: int = 5,
        connect_timeout: int = 10,
        application_name: str = 'storage-diet',
    ):
        self.url = url or None
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.database = database
        self.pool_size = int(pool_size)
        self.connect_timeout = int(connect_timeout)
        self.application_name = application_name

        if not self.url and not all([self.user, self.database]):
            raise ValueError("Database config needs either url or user and database")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'DatabaseConfig':
        return cls(
            url=config_dict.get('url'),
            host=config_dict.get('host', 'localhost'),
            port=config_dict.get('port', 5432),
            user=config_dict.get('user'),
            password=config_dict.get('password'),
            database=config_dict.get('database'),
            pool_size=config_dict.get('pool_size', 5),
            connect_timeout=config_dict.get('connect_timeout', 10),
            application_name=config_dict.get('application_name', 'storage-diet'),
        )

    @property
    def connection_url(self) -> str:
        if self.url:
            return self.url
        password = f":{self.password}" if self.password else ""
        return f"postgresql://{self.user}{password}@{self.host}:{self.port}/{self.database}"

    @property
    def safe_url(self) -> str:
        """Connection URL with the password masked, for logs."""
        if self.password:
            return self.connection_url.replace(self.password, '****')
        return self.connection_url


class SessionManager:
    """Owns the engine and session factory for one database."""

    def __init__(self, config: DatabaseConfig, engine: Optional[Engine] = None):
        self.config = config
        self._engine = engine if engine is not None else self._create_engine()
        self._test_connection()
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    def _create_engine(self) -> Engine:
        url = self.config.connection_url
        logger.info(f"Creating engine with URL: {self.config.safe_url}")
        kwargs: Dict[str, Any] = {'pool_pre_ping': True}
        if url.startswith('postgresql'):
            kwargs['pool_size'] = self.config.pool_size
            kwargs['connect_args'] = {
                'connect_timeout': self.config.connect_timeout,
                'application_name': self.config.application_name,
            }
        try:
            return create_engine(url, **kwargs)
        except (SQLAlchemyError, ImportError) as e:
            logger.error(f"Failed to create database engine: {e}")
            raise DatabaseConnectionError(f"Could not create database engine: {e}") from e

    def _test_connection(self):
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Successfully tested database connection")
        except SQLAlchemyError as e:
            logger.error(f"Failed to test database connection: {e}")
            raise DatabaseConnectionError(f"Could not connect to database: {e}") from e

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_session(self):
        return self._session_factory()

    @contextmanager
    def session(self):
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def init_db(self):
        """Create any missing tables."""
        from .models import Base
        Base.metadata.create_all(self._engine)
        logger.info("Successfully initialized database schema")

    def dispose(self):
        """Dispose of the engine and all pooled connections."""
        logger.info("Disposing database engine and connection pool")
        self._engine.dispose()


def create_session_manager(config_dict: Dict[str, Any]) -> SessionManager:
    """Build a SessionManager from the database config section."""
    return SessionManager(DatabaseConfig.from_dict(config_dict))
