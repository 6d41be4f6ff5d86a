"""
FastAPI dependencies resolving objects owned by the application context
"""

from typing import AsyncGenerator
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from core.context import AppContext
from exporters.exporter import FormationExporter
from scraper.scheduler import SyncScheduler


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler


async def get_db(context: AppContext = Depends(get_context)) -> AsyncGenerator[AsyncSession, None]:
    """One session per request"""
    async with context.session_factory() as session:
        yield session


def get_exporter(context: AppContext = Depends(get_context)) -> FormationExporter:
    return FormationExporter(context.settings.EXPORT_DIR, analytics=context.analytics)
