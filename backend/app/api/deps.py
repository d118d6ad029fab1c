"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.callid.client import CallIDAssignmentClient, GatewayIdentity
from app.core.progress import ProgressNotifier
from app.db.session import get_db as _get_db
from app.extraction import ExtractionEngine, ExtractionWorkspace


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session."""
    async for session in _get_db():
        yield session


async def get_gateway_identity(
    x_user_authenticated: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
    x_user_roles: str | None = Header(default=None),
) -> GatewayIdentity:
    """
    Identity forwarded by the API gateway.

    A missing ``x-user-authenticated`` header counts as authenticated; the
    gateway strips it only for calls it has already vetted.
    """
    return GatewayIdentity(
        authenticated=x_user_authenticated if x_user_authenticated is not None else "true",
        username=x_user_name,
        roles=x_user_roles,
    )


def get_progress(request: Request) -> ProgressNotifier:
    return request.app.state.progress


def get_workspace(request: Request) -> ExtractionWorkspace:
    return request.app.state.workspace


def get_extraction_engine(request: Request) -> ExtractionEngine:
    return request.app.state.extraction


def get_callid_client(request: Request) -> CallIDAssignmentClient:
    return request.app.state.callid
