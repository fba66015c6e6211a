"""
Order database lifecycle management.

This module owns the SQLAlchemy engine and session factory. The engine is
created once in the main thread at application startup and disposed on
shutdown.

THREAD SAFETY:
    - initialize() and cleanup() must be called from the main thread only
    - session_scope() hands each caller its own Session; sessions are never
      shared between threads

FAIL FAST BEHAVIOR:
    - If the engine cannot connect or the schema cannot be created:
      raises DatabaseUnavailableError

Usage:
    # At application startup (main thread)
    database = DatabaseManager("sqlite:///print_emporium.db")
    database.initialize()

    # Any thread
    with database.session_scope() as session:
        session.add(record)

    # At application shutdown (main thread)
    database.cleanup()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import DatabaseUnavailableError


class DatabaseManager:
    """
    Manages the order database engine.

    Attributes:
        database_url: SQLAlchemy URL
        is_initialized: True once the engine is connected and the schema exists
        engine: SQLAlchemy Engine (read-only after init)
    """

    def __init__(self, database_url: str, logger: Optional[logging.Logger] = None):
        """
        Initialize the manager.

        Note:
            This does NOT connect - call initialize() to do that.
        """
        self._database_url = database_url
        self._logger = logger or logging.getLogger("print_emporium.core.database")
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._is_initialized = False

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def engine(self) -> Engine:
        """
        SQLAlchemy engine.

        Raises:
            RuntimeError: If not initialized
        """
        if not self._is_initialized or self._engine is None:
            raise RuntimeError("Database not initialized - call initialize() first")
        return self._engine

    def _is_memory_url(self) -> bool:
        return self._database_url in ("sqlite://", "sqlite:///:memory:")

    def initialize(self) -> Engine:
        """
        Create the engine, verify connectivity and create missing tables.

        Returns:
            The connected Engine

        Raises:
            DatabaseUnavailableError: If the database cannot be reached
            RuntimeError: If called when already initialized
        """
        if self._is_initialized:
            raise RuntimeError("Database already initialized")

        # Imported here so the table classes register on Base.metadata
        from models.records import Base

        self._logger.info(f"Initializing order database: {self._database_url}")

        engine_kwargs = {"future": True}
        if self._database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self._is_memory_url():
                # One shared connection, otherwise each thread sees an empty database
                engine_kwargs["poolclass"] = StaticPool

        try:
            engine = create_engine(self._database_url, **engine_kwargs)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            self._logger.critical(f"Cannot open order database: {e}")
            raise DatabaseUnavailableError(self._database_url, str(e)) from e

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._is_initialized = True

        self._logger.info("Order database initialized")
        return engine

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Transactional session: commits on success, rolls back on any exception.

        Raises:
            RuntimeError: If not initialized
        """
        if not self._is_initialized or self._session_factory is None:
            raise RuntimeError("Database not initialized - call initialize() first")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def cleanup(self) -> None:
        """
        Dispose of the engine. Safe to call multiple times.
        """
        if not self._is_initialized:
            self._logger.debug("Database not initialized, nothing to clean up")
            return

        if self._engine is not None:
            self._engine.dispose()
            self._logger.info("Order database connections closed")

        self._engine = None
        self._session_factory = None
        self._is_initialized = False

    def __enter__(self) -> "DatabaseManager":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
