"""
Core utilities and configuration for the weather ingestion service.

Modules:
    config: Application configuration and environment variable management
    database: Engine and session factory construction
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import Settings
    from core.database import build_engine, build_session_maker
    from core.exceptions import BatchUnavailableError, NetworkError
    from core.logging import setup_logging

Example:
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)

    engine = build_engine(settings)
    session_maker = build_session_maker(engine)
"""

__all__ = [
    "Settings",
    "build_engine",
    "build_session_maker",
    "init_models",
    "setup_logging",
    # Exceptions
    "ETLException",
    "RetryableError",
    "NonRetryableError",
    "ExtractionError",
    "APIExtractionError",
    "NetworkError",
    "BatchUnavailableError",
    "DataFormatError",
    "LoadError",
    "DatabaseError",
]
