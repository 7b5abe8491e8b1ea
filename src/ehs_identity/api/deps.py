"""FastAPI dependencies.

Collaborators live on ``app.state`` so tests can build an app around their
own session factory and registry.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..db import SessionFactory, get_session_factory, session_scope
from ..resolution import DuplicateDetector, MatchReviewQueue, MergeCoordinator


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_request_session_factory(request: Request) -> SessionFactory:
    return getattr(request.app.state, "session_factory", None) or get_session_factory()


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session that commits when the handler succeeds."""
    async with session_scope(get_request_session_factory(request)) as session:
        yield session


def get_duplicate_detector(request: Request) -> DuplicateDetector:
    settings = get_app_settings(request)
    return DuplicateDetector(offender_scan_limit=settings.offender_duplicate_scan_limit)


def get_merge_coordinator(request: Request) -> MergeCoordinator:
    return MergeCoordinator.from_settings(
        get_app_settings(request),
        get_request_session_factory(request),
        registry=getattr(request.app.state, "registry", None),
    )


def get_review_queue() -> MatchReviewQueue:
    return MatchReviewQueue()
