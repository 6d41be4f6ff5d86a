"""
Core utilities and configuration for the formation sync service.

Modules:
    config: Application configuration and environment variable management
    database: Provider selection, engine and session factory
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    repository: Narrow create/update/find/count persistence contract
    context: Explicit application context built once at startup

Usage:
    from core.config import settings
    from core.context import build_context
    from core.logging import setup_logging

Example:
    setup_logging()
    context = build_context()

    async with context.session_factory() as session:
        ...
"""
