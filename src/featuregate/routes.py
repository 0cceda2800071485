"""FastAPI routes exposing the registry operations over HTTP.

Usage:
    app = FastAPI()
    app.include_router(create_router(registry, get_session), prefix="/feature-gate")

``get_session`` is a FastAPI dependency returning the caller's Session, or
None when the request is unauthenticated.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from featuregate.models import Session

if TYPE_CHECKING:
    from featuregate.registry import FeatureRegistry
    from featuregate.results import OperationResult

logger = logging.getLogger(__name__)

SessionDependency = Callable[..., Session | None | Awaitable[Session | None]]


def to_response(result: OperationResult) -> JSONResponse:
    """``{"data": ...}`` with 200, or ``{"error": ...}`` with the result status."""
    if result.ok:
        return JSONResponse(result.to_dict(), status_code=200)
    return JSONResponse({"error": result.error}, status_code=result.status)


def create_router(registry: FeatureRegistry, get_session: SessionDependency) -> APIRouter:
    """Build the router for a registry.

    Args:
        registry: Feature registry serving the requests
        get_session: Dependency resolving the caller's session

    Returns:
        APIRouter with the feature and flag routes
    """
    router = APIRouter(tags=["featuregate"])
    CurrentSession = Depends(get_session)

    @router.get("/features/available")
    async def get_available_features(session: Session | None = CurrentSession) -> JSONResponse:
        return to_response(await registry.get_available_features(session))

    @router.post("/features")
    async def create_feature(
        body: dict[str, Any] = Body(default_factory=dict),
        session: Session | None = CurrentSession,
    ) -> JSONResponse:
        return to_response(await registry.create_feature(session, body))

    @router.get("/features")
    async def list_features(session: Session | None = CurrentSession) -> JSONResponse:
        return to_response(await registry.list_features(session))

    @router.put("/features/{feature_id}")
    async def update_feature(
        feature_id: str,
        body: dict[str, Any] = Body(default_factory=dict),
        session: Session | None = CurrentSession,
    ) -> JSONResponse:
        return to_response(await registry.update_feature(session, feature_id, body))

    @router.delete("/features/{feature_id}")
    async def delete_feature(feature_id: str, session: Session | None = CurrentSession) -> JSONResponse:
        return to_response(await registry.delete_feature(session, feature_id))

    @router.post("/features/{feature_id}/toggle")
    async def toggle_feature(
        feature_id: str,
        body: dict[str, Any] = Body(default_factory=dict),
        session: Session | None = CurrentSession,
    ) -> JSONResponse:
        return to_response(await registry.toggle_feature(session, feature_id, body))

    @router.post("/principals/{principal_id}/features/{feature_id}")
    async def set_feature_flag(
        principal_id: str,
        feature_id: str,
        body: dict[str, Any] | None = Body(default=None),
        session: Session | None = CurrentSession,
    ) -> JSONResponse:
        data = body if body is not None else {"enabled": True}
        return to_response(await registry.set_feature_flag(session, principal_id, feature_id, data))

    @router.delete("/principals/{principal_id}/features/{feature_id}")
    async def remove_feature_flag(
        principal_id: str,
        feature_id: str,
        session: Session | None = CurrentSession,
    ) -> JSONResponse:
        return to_response(await registry.remove_feature_flag(session, principal_id, feature_id))

    @router.get("/principals/{principal_id}/features")
    async def get_feature_flags(principal_id: str, session: Session | None = CurrentSession) -> JSONResponse:
        return to_response(await registry.get_feature_flags(session, principal_id))

    logger.debug("Registered featuregate routes (principal=%s)", registry.principal_mode)
    return router
